"""Shared fixtures."""

from __future__ import annotations

import keyring
import pytest
import pytest_asyncio
from aiohttp.test_utils import TestServer

from fakes import FakeAgentServer, MemoryKeyring


@pytest.fixture
def memory_keyring():
    previous = keyring.get_keyring()
    backend = MemoryKeyring()
    keyring.set_keyring(backend)
    yield backend
    keyring.set_keyring(previous)


@pytest_asyncio.fixture
async def agent_server():
    """A running FakeAgentServer; yields ``(fake, base_url)``."""
    fake = FakeAgentServer()
    server = TestServer(fake.app())
    await server.start_server()
    try:
        yield fake, str(server.make_url("")).rstrip("/")
    finally:
        fake.close_streams()
        await server.close()
