"""Projection of raw agent events into UI status updates.

The projector is the only writer of execution logs. Every update it
emits is published; step updates (everything but busy and idle) are also
appended to the open log under a fresh id. Idle closes the log.
"""
from __future__ import annotations

import itertools
import logging
import time
from typing import Callable

from passepartout.engine.events import (
    PartUpdatedEvent,
    RawEvent,
    SessionIdleEvent,
    SessionStatusEvent,
    ToolState,
)
from passepartout.engine.models import (
    ExecutionLog,
    ExecutionLogEntry,
    StatusDetails,
    StatusKind,
    StatusUpdate,
)
from passepartout.shared.formatters.tool_status import describe_tool, summarize_input

logger = logging.getLogger(__name__)


def now_millis() -> int:
    return int(time.time() * 1000)


class StatusProjector:
    """Maps RawEvents to StatusUpdates for one bound session."""

    def __init__(
        self,
        publish: Callable[[StatusUpdate], None],
        clock: Callable[[], int] = now_millis,
    ) -> None:
        self._publish = publish
        self._clock = clock
        self._ids = itertools.count(1)
        self._session_id: str | None = None
        self._log: ExecutionLog | None = None

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def current_log(self) -> ExecutionLog | None:
        return self._log

    def bind(self, session_id: str) -> None:
        self._session_id = session_id

    def begin_log(self) -> ExecutionLog:
        """Freeze whatever log is open and start a fresh one."""
        if self._log is not None and not self._log.frozen:
            stray = self._log.freeze()
            if stray:
                logger.debug("Discarding %d unattached log entries", len(stray))
        self._log = ExecutionLog()
        return self._log

    def handle(self, event: RawEvent) -> StatusUpdate | None:
        """Project *event*, publish the result and record it in the log."""
        update = self.project(event)
        if update is None:
            return None
        self._publish(update)
        if update.is_idle:
            if self._log is not None:
                self._log.freeze()
            return update
        if not update.kind.is_step:
            return update
        if self._log is None or self._log.frozen:
            # Status arriving between prompts opens a log of its own
            self._log = ExecutionLog()
        self._log.append(ExecutionLogEntry.from_update(next(self._ids), update))
        return update

    def project(self, event: RawEvent) -> StatusUpdate | None:
        """Pure mapping; None for filtered or ignored events."""
        if self._session_id is None or event.session_id != self._session_id:
            return None
        if isinstance(event, SessionStatusEvent):
            return self._project_status(event)
        if isinstance(event, SessionIdleEvent):
            return self._update(StatusKind.IDLE)
        if isinstance(event, PartUpdatedEvent):
            return self._project_part(event)
        return None

    def _update(self, kind: StatusKind, message: str | None = None, **details) -> StatusUpdate:
        return StatusUpdate(
            kind=kind,
            message=message,
            details=StatusDetails(timestamp=self._clock(), **details),
        )

    def _project_status(self, event: SessionStatusEvent) -> StatusUpdate | None:
        if event.status == "busy":
            return self._update(StatusKind.BUSY, "Thinking...")
        if event.status == "idle":
            return self._update(StatusKind.IDLE)
        if event.status == "retry":
            attempt = event.attempt if event.attempt is not None else 1
            return self._update(StatusKind.RETRY, f"Retrying (attempt {attempt})...")
        return None

    def _project_part(self, event: PartUpdatedEvent) -> StatusUpdate | None:
        if event.part_type == "tool":
            if not event.tool or event.state is None:
                return None
            return self._project_tool(event.tool, event.state)
        if event.part_type == "reasoning":
            return self._update(StatusKind.REASONING, "Reasoning...")
        if event.part_type == "text":
            return self._update(StatusKind.GENERATING, "Generating response...")
        return None

    def _project_tool(self, tool: str, state: ToolState) -> StatusUpdate | None:
        if state.status == "running":
            description = describe_tool(tool, state.title)
            summary = summarize_input(tool, state.input)
            message = f"{description}: {summary.short}" if summary.short else description
            full = f"{description}: {summary.full}" if summary.full else description
            return self._update(
                StatusKind.TOOL, message,
                full_message=full, tool_name=tool, input=state.input,
            )
        if state.status == "completed":
            description = describe_tool(tool, state.title)
            return self._update(
                StatusKind.TOOL_COMPLETED, f"{description} completed",
                tool_name=tool, output=state.output, duration=state.duration,
            )
        if state.status == "error":
            return self._update(
                StatusKind.TOOL_ERROR, f"Error: {state.error or 'Unknown error'}",
                tool_name=tool, error=state.error, duration=state.duration,
            )
        return None
