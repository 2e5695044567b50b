"""Bridge facade: the only surface the presentation layer talks to.

Owns the agent process, the session, the event reader task, the status
bus and the model selection for one run. Session and raw event types
never leave this module.

Usage::

    async with AgentBridge(config) as bridge:
        unsubscribe = bridge.subscribe_status(print)
        result = await bridge.send_message("List the files here")
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Callable

from passepartout.adapters.dispatcher import RequestDispatcher
from passepartout.adapters.projector import StatusProjector, now_millis
from passepartout.adapters.status_bus import StatusBus
from passepartout.engine.config import BridgeConfig
from passepartout.engine.errors import StreamTerminatedError
from passepartout.engine.model_registry import ModelCatalog
from passepartout.engine.models import (
    BrowserCheckResult,
    CredentialStatus,
    ModelOption,
    PromptResult,
    Session,
    StatusUpdate,
)
from passepartout.engine.process import AgentProcessManager
from passepartout.engine.stream import EventStreamConsumer
from passepartout.shared.services.credentials import CredentialStore

logger = logging.getLogger(__name__)


class AgentBridge:
    """Facade over one agent session."""

    def __init__(
        self,
        config: BridgeConfig | None = None,
        *,
        credentials: CredentialStore | None = None,
        catalog: ModelCatalog | None = None,
        process_manager: AgentProcessManager | None = None,
        clock: Callable[[], int] = now_millis,
    ) -> None:
        self.config = config or BridgeConfig()
        self._credentials = credentials or CredentialStore(self.config.keyring_service)
        self._catalog = catalog or ModelCatalog()
        self._bus = StatusBus()
        self._projector = StatusProjector(self._bus.publish, clock=clock)
        self._dispatcher = RequestDispatcher(
            self._projector, settle_timeout=self.config.settle_timeout_seconds,
        )
        self._manager = process_manager or AgentProcessManager(
            self.config, provider_env=self._credentials.get_env_vars,
        )
        self._session: Session | None = None
        self._reader_task: asyncio.Task | None = None
        self._stream_error: str | None = None

    # ── Lifecycle ──

    @property
    def ready(self) -> bool:
        return self._session is not None

    @property
    def server_url(self) -> str | None:
        return self._session.server_url if self._session is not None else None

    @property
    def stream_error(self) -> str | None:
        """Reason the event stream ended, if it has."""
        return self._stream_error

    async def start(self) -> None:
        """Start the agent, create the session and begin reading events."""
        if self._session is not None:
            return
        self._bus.reopen()
        handle = await self._manager.start()
        try:
            session = await handle.create(self.config.session_title)
        except BaseException:
            await self._manager.stop()
            raise
        self._session = session
        self._stream_error = None
        self._projector.bind(session.session_id)
        self._dispatcher.attach(handle, session)
        consumer = EventStreamConsumer(handle.connection)
        self._reader_task = asyncio.create_task(
            self._read_events(consumer, session), name="passepartout-events",
        )
        logger.info("AgentBridge ready (session=%s)", session.session_id)

    async def shutdown(self) -> None:
        """Stop reading events and shut the agent down. Idempotent.

        Status subscribers are dropped; after a later start() they must
        subscribe again.
        """
        task = self._reader_task
        self._reader_task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._dispatcher.detach()
        if self._session is not None:
            logger.info("AgentBridge shutting down (session=%s)", self._session.session_id)
        self._session = None
        await self._manager.stop()
        self._bus.close()

    async def __aenter__(self) -> AgentBridge:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()

    async def _read_events(self, consumer: EventStreamConsumer, session: Session) -> None:
        retries = 0
        max_retries = self.config.stream_reconnect_attempts
        while True:
            try:
                async for event in consumer.subscribe(session):
                    retries = 0
                    try:
                        self._projector.handle(event)
                    except Exception:
                        logger.exception(
                            "Failed to project %s event, skipping", event.event_type,
                        )
            except StreamTerminatedError as exc:
                self._stream_error = exc.reason
                if retries >= max_retries:
                    logger.warning("Event stream ended: %s", exc.reason)
                    return
                retries += 1
                logger.info(
                    "Event stream ended (%s), resubscribing in %.1fs (attempt %d/%d)",
                    exc.reason, self.config.stream_reconnect_delay_seconds,
                    retries, max_retries,
                )
                await asyncio.sleep(self.config.stream_reconnect_delay_seconds)
            except Exception as exc:
                # Nothing awaits this task, so the failure surfaces via stream_error
                self._stream_error = f"event reader failed: {str(exc) or type(exc).__name__}"
                logger.exception("Event reader failed")
                return

    # ── Messaging ──

    async def send_message(
        self,
        text: str,
        provider_id: str | None = None,
        model_id: str | None = None,
    ) -> PromptResult:
        """Send *text* with the given (or currently selected) model."""
        current = self._catalog.current
        return await self._dispatcher.send(
            text,
            provider_id or current.provider_id,
            model_id or current.model_id,
        )

    @property
    def busy(self) -> bool:
        return self._dispatcher.in_flight

    def subscribe_status(self, callback: Callable[[StatusUpdate], None]) -> Callable[[], None]:
        """Receive every status update, idle included, in emission order."""
        return self._bus.subscribe(callback)

    def status_stream(self) -> AsyncIterator[StatusUpdate]:
        return self._bus.stream()

    # ── Models ──

    def available_models(self) -> list[ModelOption]:
        return self._catalog.list_models()

    @property
    def current_model(self) -> ModelOption:
        return self._catalog.current

    def set_model(self, selector: str) -> ModelOption:
        """Select a model by ``provider:model`` or bare model id."""
        return self._catalog.select(selector)

    # ── Credentials ──

    def list_credential_status(self) -> list[CredentialStatus]:
        return self._credentials.list_status()

    def save_credential(self, provider_id: str, secret: str) -> None:
        self._credentials.save(provider_id, secret)

    def delete_credential(self, provider_id: str) -> None:
        self._credentials.delete(provider_id)

    # ── Tools ──

    async def ensure_browser(self) -> BrowserCheckResult:
        """Make sure the browser for the agent's web tools is installed.

        Works whether or not the agent is running.
        """
        return await self._manager.ensure_browser()
