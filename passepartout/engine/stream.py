"""Subscription to the agent's server-sent event feed.

The feed is a single long-lived ``GET /event``; every record carries one
JSON object in its ``data`` field. The consumer yields typed RawEvents
and never stops on a bad record.
"""
from __future__ import annotations

import asyncio
import codecs
import logging
from typing import AsyncIterator

import aiohttp

from passepartout.engine.errors import StreamDecodeError, StreamTerminatedError
from passepartout.engine.events import RawEvent, decode_event_json
from passepartout.engine.models import Session
from passepartout.engine.transport import AgentConnection

logger = logging.getLogger(__name__)

EVENT_PATH = "/event"


def _record_data(record: str) -> str | None:
    """Return the joined ``data`` lines of one SSE record, or None."""
    data_lines: list[str] = []
    for line in record.split("\n"):
        if not line or line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if field != "data":
            continue
        if value.startswith(" "):
            value = value[1:]
        data_lines.append(value)
    if not data_lines:
        return None
    return "\n".join(data_lines)


async def iter_sse_data(chunks: AsyncIterator[bytes]) -> AsyncIterator[str]:
    """Split a byte stream into SSE records and yield their data payloads.

    Records may span chunk boundaries; comment lines and records without
    a data field are dropped.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    async for chunk in chunks:
        buffer += decoder.decode(chunk)
        buffer = buffer.replace("\r\n", "\n")
        while "\n\n" in buffer:
            record, buffer = buffer.split("\n\n", 1)
            data = _record_data(record)
            if data is not None:
                yield data
    buffer += decoder.decode(b"", final=True)
    if buffer.strip():
        data = _record_data(buffer.replace("\r\n", "\n"))
        if data is not None:
            yield data


class EventStreamConsumer:
    """Reads the event feed over an AgentConnection."""

    def __init__(self, connection: AgentConnection) -> None:
        self._connection = connection
        self.decode_errors = 0

    async def subscribe(self, session: Session) -> AsyncIterator[RawEvent]:
        """Yield every decodable event until the feed ends.

        Events for all sessions are yielded; filtering by *session* is the
        projector's job. Always finishes by raising StreamTerminatedError.
        """
        logger.info("Event stream subscribing (session=%s)", session.session_id)
        try:
            async with self._connection.open_stream(EVENT_PATH) as resp:
                if resp.status != 200:
                    body = await resp.text(errors="replace")
                    raise StreamTerminatedError(
                        f"subscription refused (HTTP {resp.status}): {body[:200]}"
                    )
                logger.info("Event stream connected")
                async for data in iter_sse_data(resp.content.iter_any()):
                    try:
                        event = decode_event_json(data)
                    except StreamDecodeError as exc:
                        self.decode_errors += 1
                        logger.warning("Skipping event: %s (raw=%r)", exc, exc.raw)
                        continue
                    yield event
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.error("Event stream error: %s", exc)
            raise StreamTerminatedError(str(exc) or type(exc).__name__) from exc
        except RuntimeError as exc:
            # Connection closed underneath us during shutdown
            raise StreamTerminatedError(str(exc)) from exc
        raise StreamTerminatedError("server closed the event stream")
