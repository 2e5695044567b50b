"""Conversation session against the agent server."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any

import aiohttp

from passepartout.engine.errors import (
    ModelRejectedError,
    PromptError,
    SessionCreateError,
)
from passepartout.engine.models import PromptRequest, Session

if TYPE_CHECKING:
    from passepartout.engine.process import AgentProcessManager
    from passepartout.engine.transport import AgentConnection

logger = logging.getLogger(__name__)

NO_RESPONSE_TEXT = "No response received."

# Error names the agent uses when a provider/model pair is not available
_MODEL_REJECTION_MARKERS = ("ModelNotFound", "ProviderNotFound")
_MODEL_REJECTION_STATUSES = (400, 404, 422)


def _is_model_rejection(text: str) -> bool:
    return any(marker in text for marker in _MODEL_REJECTION_MARKERS)


def extract_answer_text(parts: Any) -> str:
    """Join the text parts of a message response with newlines."""
    texts: list[str] = []
    if isinstance(parts, list):
        for part in parts:
            if not isinstance(part, dict) or part.get("type") != "text":
                continue
            text = part.get("text")
            if isinstance(text, str):
                texts.append(text)
    if not texts:
        return NO_RESPONSE_TEXT
    return "\n".join(texts)


class SessionHandle:
    """Issues session-level requests over the manager's connection.

    Valid only while its AgentProcessManager is running.
    """

    def __init__(
        self,
        manager: AgentProcessManager,
        connection: AgentConnection,
    ) -> None:
        self._manager = manager
        self._connection = connection

    @property
    def connection(self) -> AgentConnection:
        return self._connection

    @property
    def alive(self) -> bool:
        return self._manager.running and not self._connection.closed

    async def create(self, title: str) -> Session:
        """Create a new session on the agent and return it."""
        if not self.alive:
            raise SessionCreateError("agent server is not running")
        try:
            status, body = await self._connection.post_json(
                "/session", {"title": title}, timeout=30.0,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise SessionCreateError(
                f"request failed: {exc or type(exc).__name__}"
            ) from exc

        if not 200 <= status < 300:
            raise SessionCreateError(f"API error ({status}): {body}")
        try:
            data = json.loads(body)
        except json.JSONDecodeError as exc:
            raise SessionCreateError(f"failed to parse response: {exc}") from exc
        session_id = data.get("id") if isinstance(data, dict) else None
        if not isinstance(session_id, str) or not session_id:
            raise SessionCreateError("response did not contain a session id")

        logger.info("Session created: %s (title=%r)", session_id, title)
        return Session(
            session_id=session_id,
            title=title,
            server_url=self._connection.base_url,
        )

    async def prompt(self, session_id: str, request: PromptRequest) -> str:
        """Send one message and wait for the agent's final answer.

        Raises PromptError (or ModelRejectedError) instead of returning a
        partial answer.
        """
        if not self.alive:
            raise PromptError("agent server is not running")
        logger.debug(
            "prompt: session=%s model=%s/%s chars=%d",
            session_id, request.provider_id, request.model_id, len(request.text),
        )
        try:
            status, body = await self._connection.post_json(
                f"/session/{session_id}/message", request.to_payload(),
            )
        except asyncio.TimeoutError as exc:
            raise PromptError("Request failed: timed out waiting for the agent") from exc
        except aiohttp.ClientError as exc:
            raise PromptError(f"Request failed: {exc}") from exc

        if not 200 <= status < 300:
            if status in _MODEL_REJECTION_STATUSES and _is_model_rejection(body):
                raise ModelRejectedError(
                    request.provider_id, request.model_id, body[:200],
                )
            raise PromptError(f"API error ({status}): {body}")

        try:
            data = json.loads(body)
        except json.JSONDecodeError as exc:
            raise PromptError(f"Failed to parse response: {exc}") from exc
        if not isinstance(data, dict):
            raise PromptError("Failed to parse response: expected an object")

        text = extract_answer_text(data.get("parts"))
        self._check_info_error(data.get("info"), request, has_text=text != NO_RESPONSE_TEXT)
        return text

    @staticmethod
    def _check_info_error(info: Any, request: PromptRequest, has_text: bool) -> None:
        """Raise for an error reported inside the assistant message info."""
        if not isinstance(info, dict):
            return
        error = info.get("error")
        if not isinstance(error, dict):
            return
        name = str(error.get("name") or "UnknownError")
        data = error.get("data")
        message = ""
        if isinstance(data, dict) and isinstance(data.get("message"), str):
            message = data["message"]
        if _is_model_rejection(name):
            raise ModelRejectedError(request.provider_id, request.model_id, message)
        if not has_text:
            raise PromptError(f"{name}: {message}" if message else name)
        logger.warning("Agent reported %s alongside an answer: %s", name, message)
