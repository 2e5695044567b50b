"""HTTP connection to a running agent server.

Wraps one aiohttp ClientSession. The connection only keeps the derived
basic-auth header, never the password it was built from.
"""
from __future__ import annotations

import logging
from typing import Any

import aiohttp

logger = logging.getLogger(__name__)

DIRECTORY_HEADER = "X-Opencode-Directory"


class AgentConnection:
    """Authenticated HTTP client bound to one agent server address."""

    def __init__(
        self,
        base_url: str,
        auth_header: str | None = None,
        directory: str | None = None,
        request_timeout: float = 300.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._headers: dict[str, str] = {}
        if auth_header:
            self._headers["Authorization"] = auth_header
        if directory:
            self._headers[DIRECTORY_HEADER] = directory
        self._request_timeout = request_timeout
        self._http: aiohttp.ClientSession | None = None

    @property
    def closed(self) -> bool:
        return self._http is None or self._http.closed

    @property
    def has_auth(self) -> bool:
        return "Authorization" in self._headers

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def open(self) -> None:
        if not self.closed:
            return
        self._http = aiohttp.ClientSession(headers=self._headers)
        logger.debug(
            "AgentConnection opened: %s (auth=%s)", self.base_url, self.has_auth,
        )

    async def close(self) -> None:
        if self._http is not None and not self._http.closed:
            await self._http.close()
            logger.debug("AgentConnection closed: %s", self.base_url)
        self._http = None

    def _client(self) -> aiohttp.ClientSession:
        if self._http is None or self._http.closed:
            raise RuntimeError("Agent connection is not open")
        return self._http

    async def get_status(self, path: str, timeout: float = 5.0) -> int:
        """GET *path* and return only the HTTP status."""
        async with self._client().get(
            self.url(path),
            timeout=aiohttp.ClientTimeout(total=timeout),
        ) as resp:
            return resp.status

    async def post_json(
        self,
        path: str,
        payload: dict[str, Any],
        timeout: float | None = None,
    ) -> tuple[int, str]:
        """POST a JSON body; return ``(status, body_text)``.

        Transport failures propagate as aiohttp.ClientError or
        asyncio.TimeoutError. Bytes that are not valid in the response
        charset are replaced, never raised.
        """
        async with self._client().post(
            self.url(path),
            json=payload,
            timeout=aiohttp.ClientTimeout(total=timeout or self._request_timeout),
        ) as resp:
            body = await resp.text(errors="replace")
            return resp.status, body

    def open_stream(self, path: str):
        """Return a request context manager for a long-lived GET."""
        return self._client().get(
            self.url(path),
            timeout=aiohttp.ClientTimeout(total=None, sock_read=None),
            headers={"Accept": "text/event-stream"},
        )
