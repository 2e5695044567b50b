"""Raw event types received from the agent's event feed.

Each SSE record is a JSON object ``{"type": ..., "properties": {...}}``.
decode_event() turns it into a typed dataclass; records that are not
structurally valid raise StreamDecodeError so the consumer can skip them.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable

from passepartout.engine.errors import StreamDecodeError

SESSION_STATUS = "session.status"
SESSION_IDLE = "session.idle"
PART_UPDATED = "message.part.updated"


@dataclass
class RawEvent:
    """Base event from the agent's stream."""
    event_type: str = ""
    session_id: str | None = None


@dataclass
class SessionStatusEvent(RawEvent):
    event_type: str = SESSION_STATUS
    status: str = ""  # "busy", "idle", "retry"
    attempt: int | None = None


@dataclass
class SessionIdleEvent(RawEvent):
    event_type: str = SESSION_IDLE


@dataclass
class ToolState:
    """Lifecycle snapshot of one tool call."""
    status: str = ""  # "running", "completed", "error" (others ignored)
    title: str | None = None
    input: dict[str, Any] | None = None
    output: str | None = None
    error: str | None = None
    start: int | None = None  # epoch ms
    end: int | None = None

    @property
    def duration(self) -> int | None:
        if self.start is None or self.end is None:
            return None
        return self.end - self.start


@dataclass
class PartUpdatedEvent(RawEvent):
    event_type: str = PART_UPDATED
    part_type: str = ""  # "tool", "reasoning", "text", ...
    tool: str | None = None
    state: ToolState | None = None


@dataclass
class UnknownEvent(RawEvent):
    """Any event type the bridge does not project."""


def _opt_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _opt_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return None


def _expect_mapping(value: Any, what: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise StreamDecodeError(f"{what} is {type(value).__name__}, expected object")
    return value


def _decode_session_status(props: dict[str, Any]) -> RawEvent:
    status = _expect_mapping(props.get("status"), "properties.status")
    return SessionStatusEvent(
        session_id=_opt_str(props.get("sessionID")),
        status=_opt_str(status.get("type")) or "",
        attempt=_opt_int(status.get("attempt")),
    )


def _decode_session_idle(props: dict[str, Any]) -> RawEvent:
    return SessionIdleEvent(session_id=_opt_str(props.get("sessionID")))


def _decode_tool_state(raw: Any) -> ToolState | None:
    if raw is None:
        return None
    state = _expect_mapping(raw, "part.state")
    time = _expect_mapping(state.get("time"), "part.state.time")
    tool_input = state.get("input")
    return ToolState(
        status=_opt_str(state.get("status")) or "",
        title=_opt_str(state.get("title")),
        input=tool_input if isinstance(tool_input, dict) else None,
        output=_opt_str(state.get("output")),
        error=_opt_str(state.get("error")),
        start=_opt_int(time.get("start")),
        end=_opt_int(time.get("end")),
    )


def _decode_part_updated(props: dict[str, Any]) -> RawEvent:
    part = _expect_mapping(props.get("part"), "properties.part")
    return PartUpdatedEvent(
        session_id=_opt_str(part.get("sessionID")),
        part_type=_opt_str(part.get("type")) or "",
        tool=_opt_str(part.get("tool")),
        state=_decode_tool_state(part.get("state")),
    )


_DECODERS: dict[str, Callable[[dict[str, Any]], RawEvent]] = {
    SESSION_STATUS: _decode_session_status,
    SESSION_IDLE: _decode_session_idle,
    PART_UPDATED: _decode_part_updated,
}


def decode_event(data: Any) -> RawEvent:
    """Convert one parsed event object into a typed RawEvent.

    Unknown event types decode to UnknownEvent rather than failing.
    """
    if not isinstance(data, dict):
        raise StreamDecodeError(f"event is {type(data).__name__}, expected object")
    event_type = data.get("type")
    if not isinstance(event_type, str) or not event_type:
        raise StreamDecodeError("event has no type")
    props = _expect_mapping(data.get("properties"), "properties")
    decoder = _DECODERS.get(event_type)
    if decoder is None:
        return UnknownEvent(
            event_type=event_type,
            session_id=_opt_str(props.get("sessionID")),
        )
    return decoder(props)


def decode_event_json(text: str) -> RawEvent:
    """Parse and decode the JSON payload of one SSE ``data`` field."""
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError) as exc:
        raise StreamDecodeError(f"invalid JSON ({exc})", raw=text[:200]) from exc
    try:
        return decode_event(data)
    except StreamDecodeError as exc:
        exc.raw = text[:200]
        raise
