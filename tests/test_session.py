"""Tests for SessionHandle against an in-process agent server."""

from __future__ import annotations

import base64

import pytest
import pytest_asyncio

from passepartout.engine.config import BridgeConfig
from passepartout.engine.errors import (
    ModelRejectedError,
    PromptError,
    SessionCreateError,
)
from passepartout.engine.models import PromptRequest
from passepartout.engine.process import AgentProcessManager
from passepartout.engine.session import extract_answer_text

REQUEST = PromptRequest(text="hello", provider_id="openai", model_id="gpt-4o")


@pytest_asyncio.fixture
async def started(agent_server, tmp_path):
    fake, base_url = agent_server
    config = BridgeConfig(
        server_url=base_url,
        server_password="pw",
        workspace_dir=str(tmp_path),
        startup_timeout_seconds=2,
        health_check_interval_seconds=0.05,
    )
    manager = AgentProcessManager(config)
    handle = await manager.start()
    try:
        yield fake, manager, handle
    finally:
        await manager.stop()


def test_extract_answer_text():
    parts = [
        {"type": "step-start"},
        {"type": "text", "text": "first"},
        {"type": "tool", "tool": "bash"},
        {"type": "text", "text": "second"},
    ]
    assert extract_answer_text(parts) == "first\nsecond"
    assert extract_answer_text([]) == "No response received."
    assert extract_answer_text(None) == "No response received."


@pytest.mark.asyncio
async def test_create_sends_title_auth_and_directory(started, tmp_path):
    fake, _, handle = started
    session = await handle.create("Chat Session")
    assert session.session_id == "ses_test"
    assert session.title == "Chat Session"

    method, path, headers, body = fake.requests[-1]
    assert (method, path, body) == ("POST", "/session", {"title": "Chat Session"})
    assert headers["X-Opencode-Directory"] == str(tmp_path.resolve())
    expected = base64.b64encode(b"passepartout:pw").decode()
    assert headers["Authorization"] == f"Basic {expected}"


@pytest.mark.asyncio
async def test_create_after_stop_raises(started):
    _, manager, handle = started
    await manager.stop()
    with pytest.raises(SessionCreateError, match="not running"):
        await handle.create("x")


@pytest.mark.asyncio
async def test_prompt_returns_joined_text(started):
    fake, _, handle = started
    fake.reply_parts = [{"type": "text", "text": "a"}, {"type": "text", "text": "b"}]
    assert await handle.prompt("ses_test", REQUEST) == "a\nb"
    _, path, _, body = fake.requests[-1]
    assert path == "/session/ses_test/message"
    assert body["model"] == {"providerID": "openai", "modelID": "gpt-4o"}
    assert body["parts"] == [{"type": "text", "text": "hello"}]


@pytest.mark.asyncio
async def test_prompt_without_text_parts(started):
    fake, _, handle = started
    fake.reply_parts = [{"type": "tool", "tool": "bash"}]
    assert await handle.prompt("ses_test", REQUEST) == "No response received."


@pytest.mark.asyncio
async def test_prompt_http_error(started):
    fake, _, handle = started
    fake.reply_status = 500
    fake.reply_body = "internal failure"
    with pytest.raises(PromptError) as exc_info:
        await handle.prompt("ses_test", REQUEST)
    assert exc_info.value.reason == "API error (500): internal failure"


@pytest.mark.asyncio
async def test_prompt_undecodable_body(started):
    fake, _, handle = started
    fake.reply_body = "<html>"
    with pytest.raises(PromptError, match="Failed to parse response"):
        await handle.prompt("ses_test", REQUEST)


@pytest.mark.asyncio
async def test_prompt_invalid_utf8_is_replaced(started):
    fake, _, handle = started
    fake.reply_body = b'{"parts":[{"type":"text","text":"ok \xff\xfe"}]}'
    text = await handle.prompt("ses_test", REQUEST)
    assert text == "ok \ufffd\ufffd"


@pytest.mark.asyncio
async def test_prompt_model_rejected_by_status(started):
    fake, _, handle = started
    fake.reply_status = 400
    fake.reply_body = '{"name":"ProviderModelNotFoundError","data":{}}'
    with pytest.raises(ModelRejectedError) as exc_info:
        await handle.prompt("ses_test", REQUEST)
    assert exc_info.value.model_id == "gpt-4o"


@pytest.mark.asyncio
async def test_prompt_model_rejected_in_info(started):
    fake, _, handle = started
    fake.reply_body = (
        '{"info": {"error": {"name": "ProviderModelNotFoundError",'
        ' "data": {"message": "no such model"}}}, "parts": []}'
    )
    with pytest.raises(ModelRejectedError, match="no such model"):
        await handle.prompt("ses_test", REQUEST)


@pytest.mark.asyncio
async def test_prompt_info_error_without_answer(started):
    fake, _, handle = started
    fake.reply_body = (
        '{"info": {"error": {"name": "ProviderAuthError",'
        ' "data": {"message": "bad key"}}}, "parts": []}'
    )
    with pytest.raises(PromptError, match="ProviderAuthError: bad key"):
        await handle.prompt("ses_test", REQUEST)
