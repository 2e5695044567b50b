"""Fan-out of StatusUpdates to UI subscribers.

Callbacks run synchronously in publish order. Consumers that would
rather await updates can use ``stream()``, which is backed by a
per-consumer asyncio.Queue.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Callable

from passepartout.engine.models import StatusUpdate

logger = logging.getLogger(__name__)

StatusCallback = Callable[[StatusUpdate], None]


class StatusBus:
    """Ordered publish/subscribe channel for status updates."""

    def __init__(self, maxsize: int = 5000) -> None:
        self._callbacks: list[StatusCallback] = []
        self._queues: list[asyncio.Queue[StatusUpdate]] = []
        self._maxsize = maxsize
        self._closed = False

    @property
    def subscriber_count(self) -> int:
        return len(self._callbacks) + len(self._queues)

    def subscribe(self, callback: StatusCallback) -> Callable[[], None]:
        """Register *callback*; returns a function that unregisters it."""
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

        return unsubscribe

    def publish(self, update: StatusUpdate) -> None:
        if self._closed:
            return
        for callback in list(self._callbacks):
            try:
                callback(update)
            except Exception:
                logger.exception("Status subscriber %r failed", callback)
        for queue in self._queues:
            try:
                queue.put_nowait(update)
            except asyncio.QueueFull:
                logger.error(
                    "StatusBus queue full, dropping %s (queue size: %d)",
                    update.kind.value, queue.qsize(),
                )

    async def stream(self) -> AsyncIterator[StatusUpdate]:
        """Yield updates as they arrive. Stops on close()."""
        queue: asyncio.Queue[StatusUpdate] = asyncio.Queue(maxsize=self._maxsize)
        self._queues.append(queue)
        try:
            while not self._closed:
                try:
                    update = await asyncio.wait_for(queue.get(), timeout=0.5)
                except asyncio.TimeoutError:
                    continue
                yield update
        finally:
            self._queues.remove(queue)

    def close(self) -> None:
        """Stop delivering updates and drop all subscribers."""
        self._closed = True
        self._callbacks.clear()

    def reopen(self) -> None:
        """Accept updates again after close(). Subscribers must re-register."""
        self._closed = False
