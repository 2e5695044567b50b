"""Core data models for the agent bridge.

Dataclasses and enums shared by the engine and adapter layers. Single
source of truth to avoid circular imports.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class StatusKind(str, Enum):
    """UI-facing status vocabulary."""
    IDLE = "idle"
    BUSY = "busy"
    TOOL = "tool"
    TOOL_COMPLETED = "tool-completed"
    TOOL_ERROR = "tool-error"
    REASONING = "reasoning"
    GENERATING = "generating"
    RETRY = "retry"

    @property
    def is_step(self) -> bool:
        """Whether updates of this kind are recorded in the execution log.

        busy and idle only describe the session lifecycle.
        """
        return self not in (StatusKind.IDLE, StatusKind.BUSY)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class StatusDetails:
    """Structured payload attached to a StatusUpdate.

    ``duration`` is in milliseconds and is None (not 0) unless both
    tool timestamps were reported.
    """
    timestamp: int
    full_message: str | None = None
    tool_name: str | None = None
    input: dict[str, Any] | None = None
    output: str | None = None
    error: str | None = None
    duration: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            k: v for k, v in self.__dict__.items() if v is not None
        }


@dataclass(frozen=True)
class StatusUpdate:
    """One projected status signal, pushed to subscribers."""
    kind: StatusKind
    message: str | None = None
    details: StatusDetails | None = None

    @property
    def is_idle(self) -> bool:
        return self.kind == StatusKind.IDLE

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"type": self.kind.value}
        if self.message is not None:
            d["message"] = self.message
        if self.details is not None:
            d["details"] = self.details.to_dict()
        return d


@dataclass(frozen=True)
class ExecutionLogEntry:
    """A recorded step of one prompt's execution.

    ``entry_id`` comes from a per-bridge counter, never from wall-clock
    time, so two steps with the same timestamp stay distinct and ordered.
    """
    entry_id: int
    kind: StatusKind
    message: str | None = None
    details: StatusDetails | None = None

    @classmethod
    def from_update(cls, entry_id: int, update: StatusUpdate) -> ExecutionLogEntry:
        return cls(
            entry_id=entry_id,
            kind=update.kind,
            message=update.message,
            details=update.details,
        )

    @property
    def display_message(self) -> str:
        """Untruncated message for log views."""
        if self.details is not None and self.details.full_message:
            return self.details.full_message
        return self.message or ""


class ExecutionLog:
    """Append-only accumulator for the entries of one prompt.

    Written only by the StatusProjector; read by the RequestDispatcher
    when the prompt completes. Once frozen it never changes again.
    """

    def __init__(self) -> None:
        self._entries: list[ExecutionLogEntry] = []
        self._frozen = False
        self._frozen_event = asyncio.Event()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def append(self, entry: ExecutionLogEntry) -> None:
        if self._frozen:
            raise RuntimeError("Cannot append to a frozen execution log")
        self._entries.append(entry)

    def freeze(self) -> tuple[ExecutionLogEntry, ...]:
        """Freeze the log (idempotent) and return its entries."""
        if not self._frozen:
            self._frozen = True
            self._frozen_event.set()
        return self.entries

    @property
    def entries(self) -> tuple[ExecutionLogEntry, ...]:
        return tuple(self._entries)

    async def wait_frozen(self, timeout: float) -> bool:
        """Wait up to *timeout* seconds for the log to be frozen."""
        if self._frozen:
            return True
        if timeout <= 0:
            return False
        try:
            await asyncio.wait_for(self._frozen_event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True


@dataclass(frozen=True)
class Session:
    """One conversation context held by the backend agent."""
    session_id: str
    title: str
    server_url: str
    created_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class PromptRequest:
    text: str
    provider_id: str
    model_id: str

    def to_payload(self) -> dict[str, Any]:
        """Request body for the backend's message endpoint."""
        return {
            "parts": [{"type": "text", "text": self.text}],
            "model": {
                "providerID": self.provider_id,
                "modelID": self.model_id,
            },
        }


@dataclass(frozen=True)
class PromptResult:
    """Final answer of one prompt plus the log captured while it ran."""
    text: str
    log: tuple[ExecutionLogEntry, ...] = ()
    success: bool = True
    error: str | None = None
    provider_id: str = ""
    model_id: str = ""


@dataclass(frozen=True)
class CredentialStatus:
    """Whether a secret is stored for a provider. Never the secret itself."""
    provider_id: str
    has_key: bool

    def to_dict(self) -> dict[str, Any]:
        return {"provider_id": self.provider_id, "has_key": self.has_key}


@dataclass(frozen=True)
class BrowserCheckResult:
    """Outcome of the browser install check; ``output`` is stdout then stderr."""
    success: bool
    output: str

    def to_dict(self) -> dict[str, Any]:
        return {"success": self.success, "output": self.output}


@dataclass(frozen=True)
class ModelOption:
    """A selectable provider/model pair."""
    provider_id: str
    model_id: str
    display_name: str = ""

    @property
    def key(self) -> str:
        return f"{self.provider_id}:{self.model_id}"

    @property
    def label(self) -> str:
        return self.display_name or self.model_id
