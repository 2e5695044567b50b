"""Single-flight prompt dispatch against the active session."""
from __future__ import annotations

import asyncio
import logging

from passepartout.adapters.projector import StatusProjector
from passepartout.engine.errors import (
    ConcurrentPromptError,
    PromptError,
    SessionCreateError,
)
from passepartout.engine.models import (
    ExecutionLog,
    ExecutionLogEntry,
    PromptRequest,
    PromptResult,
    Session,
)
from passepartout.engine.session import SessionHandle

logger = logging.getLogger(__name__)


class RequestDispatcher:
    """Sends one prompt at a time and pairs its answer with its log."""

    def __init__(self, projector: StatusProjector, settle_timeout: float = 1.0) -> None:
        self._projector = projector
        self._settle_timeout = settle_timeout
        self._handle: SessionHandle | None = None
        self._session: Session | None = None
        self._in_flight = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def session(self) -> Session | None:
        return self._session

    def attach(self, handle: SessionHandle, session: Session) -> None:
        self._handle = handle
        self._session = session

    def detach(self) -> None:
        self._handle = None
        self._session = None

    async def send(self, message: str, provider_id: str, model_id: str) -> PromptResult:
        """Send *message* and return the answer with its frozen log.

        Prompt failures come back as a failed PromptResult; a second call
        while one is pending raises ConcurrentPromptError.
        """
        handle, session = self._handle, self._session
        if handle is None or session is None:
            raise SessionCreateError("no active session")
        if self._in_flight:
            raise ConcurrentPromptError(session.session_id)

        self._in_flight = True
        try:
            log = self._projector.begin_log()
            request = PromptRequest(text=message, provider_id=provider_id, model_id=model_id)
            loop = asyncio.get_running_loop()
            started = loop.time()
            logger.info(
                "Prompt started: session=%s model=%s/%s",
                session.session_id, provider_id, model_id,
            )
            try:
                text = await handle.prompt(session.session_id, request)
            except PromptError as exc:
                entries = await self._settle(log)
                logger.warning(
                    "Prompt failed after %.1fs (%d log entries): %s",
                    loop.time() - started, len(entries), exc.reason,
                )
                return PromptResult(
                    text=f"Error: {exc.reason}",
                    log=entries,
                    success=False,
                    error=exc.reason,
                    provider_id=provider_id,
                    model_id=model_id,
                )
            entries = await self._settle(log)
            logger.info(
                "Prompt finished in %.1fs (%d log entries)",
                loop.time() - started, len(entries),
            )
            return PromptResult(
                text=text,
                log=entries,
                provider_id=provider_id,
                model_id=model_id,
            )
        finally:
            self._in_flight = False

    async def _settle(self, log: ExecutionLog) -> tuple[ExecutionLogEntry, ...]:
        """Give the closing idle event a moment to arrive, then freeze."""
        if not await log.wait_frozen(self._settle_timeout):
            logger.debug("No idle event within %.1fs, freezing log", self._settle_timeout)
        return log.freeze()
