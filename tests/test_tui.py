"""Textual pilot tests for the chat app and its slash commands."""

from __future__ import annotations

import pytest

from passepartout.engine.errors import ProcessStartError
from passepartout.engine.model_registry import ModelCatalog
from passepartout.engine.models import (
    ExecutionLogEntry,
    PromptResult,
    StatusDetails,
    StatusKind,
    StatusUpdate,
)
from passepartout.shared.services.credentials import CredentialStore
from passepartout.tui.app import PassepartoutApp
from passepartout.tui.widgets.conversation import ConversationLog, format_entry
from passepartout.tui.widgets.status_bar import StatusBar


class FakeBridge:
    """Just enough of AgentBridge for the app."""

    def __init__(self, fail_start: bool = False) -> None:
        self.fail_start = fail_start
        self.catalog = ModelCatalog()
        self.credentials = CredentialStore()
        self.ready = False
        self.busy = False
        self.sent: list[str] = []
        self.callbacks = []
        self.shutdown_calls = 0

    @property
    def current_model(self):
        return self.catalog.current

    def subscribe_status(self, callback):
        self.callbacks.append(callback)
        return lambda: self.callbacks.remove(callback)

    async def start(self):
        if self.fail_start:
            raise ProcessStartError("'opencode' not found on PATH")
        self.ready = True

    async def shutdown(self):
        self.shutdown_calls += 1
        self.ready = False

    async def send_message(self, text):
        self.sent.append(text)
        update = StatusUpdate(StatusKind.TOOL, "Running command: ls")
        for callback in list(self.callbacks):
            callback(update)
        return PromptResult(
            text="Two files.",
            log=(ExecutionLogEntry(1, StatusKind.TOOL, "Running command: ls"),),
        )

    def available_models(self):
        return self.catalog.list_models()

    def set_model(self, selector):
        return self.catalog.select(selector)

    def list_credential_status(self):
        return self.credentials.list_status()

    def save_credential(self, provider_id, secret):
        self.credentials.save(provider_id, secret)

    def delete_credential(self, provider_id):
        self.credentials.delete(provider_id)


def _transcript(app) -> str:
    log = app.query_one("#conversation", ConversationLog)
    return "\n".join(line.text for line in log.lines)


async def _submit(app, pilot, text: str) -> None:
    app.query_one("#prompt").value = text
    await pilot.press("enter")
    await app.workers.wait_for_complete()
    await pilot.pause()


def test_format_entry_shows_full_message_and_duration():
    entry = ExecutionLogEntry(
        3, StatusKind.TOOL_COMPLETED, "Reading file: a.py",
        StatusDetails(timestamp=0, full_message="Reading file: /src/a.py", duration=12),
    )
    line = format_entry(entry)
    assert "Reading file: /src/a.py" in line
    assert "(12ms)" in line


class TestPassepartoutApp:
    @pytest.mark.asyncio
    async def test_startup_marks_ready(self, memory_keyring):
        bridge = FakeBridge()
        app = PassepartoutApp(bridge)
        async with app.run_test(size=(120, 40)) as pilot:
            await app.workers.wait_for_complete()
            await pilot.pause()
            bar = app.query_one(StatusBar)
            assert bar.connection == "ready"
            assert bar.model == "Claude Sonnet 4.5"
            assert "Agent ready" in _transcript(app)
        assert bridge.shutdown_calls == 1
        assert bridge.callbacks == []

    @pytest.mark.asyncio
    async def test_startup_failure_is_shown(self, memory_keyring):
        app = PassepartoutApp(FakeBridge(fail_start=True))
        async with app.run_test(size=(120, 40)) as pilot:
            await app.workers.wait_for_complete()
            await pilot.pause()
            assert app.query_one(StatusBar).connection == "error"
            assert "not found on PATH" in _transcript(app)

            await _submit(app, pilot, "hello")
            assert "not running yet" in _transcript(app)

    @pytest.mark.asyncio
    async def test_message_shows_answer_and_steps(self, memory_keyring):
        bridge = FakeBridge()
        app = PassepartoutApp(bridge)
        async with app.run_test(size=(120, 40)) as pilot:
            await app.workers.wait_for_complete()
            await _submit(app, pilot, "List files")
            assert bridge.sent == ["List files"]
            text = _transcript(app)
            assert "You: List files" in text
            assert "Agent: Two files." in text
            assert "1 step(s):" in text
            assert "Running command: ls" in text
            bar = app.query_one(StatusBar)
            assert bar.kind == StatusKind.TOOL.value
            assert bar.message == "Running command: ls"

    @pytest.mark.asyncio
    async def test_busy_bridge_rejects_input(self, memory_keyring):
        bridge = FakeBridge()
        app = PassepartoutApp(bridge)
        async with app.run_test(size=(120, 40)) as pilot:
            await app.workers.wait_for_complete()
            bridge.busy = True
            await _submit(app, pilot, "again")
            assert bridge.sent == []
            assert "Still working" in _transcript(app)

    @pytest.mark.asyncio
    async def test_help_command(self, memory_keyring):
        app = PassepartoutApp(FakeBridge())
        async with app.run_test(size=(120, 40)) as pilot:
            await _submit(app, pilot, "/help")
            text = _transcript(app)
            for name in ("/model", "/keys", "/key", "/unkey", "/help"):
                assert name in text

    @pytest.mark.asyncio
    async def test_unknown_command(self, memory_keyring):
        app = PassepartoutApp(FakeBridge())
        async with app.run_test(size=(120, 40)) as pilot:
            await _submit(app, pilot, "/bogus")
            assert "Unknown command: /bogus" in _transcript(app)

    @pytest.mark.asyncio
    async def test_model_commands(self, memory_keyring):
        bridge = FakeBridge()
        app = PassepartoutApp(bridge)
        async with app.run_test(size=(120, 40)) as pilot:
            await _submit(app, pilot, "/model list")
            assert "openai:gpt-4o" in _transcript(app)

            await _submit(app, pilot, "/model openai:gpt-4o")
            assert bridge.current_model.model_id == "gpt-4o"
            assert app.query_one(StatusBar).model == "GPT-4o"

            await _submit(app, pilot, "/model openai:gpt-9")
            assert "Unknown model" in _transcript(app)
            assert bridge.current_model.model_id == "gpt-4o"

    @pytest.mark.asyncio
    async def test_key_commands(self, memory_keyring):
        app = PassepartoutApp(FakeBridge())
        async with app.run_test(size=(120, 40)) as pilot:
            await _submit(app, pilot, "/key openai sk-test")
            assert memory_keyring.store[("passepartout", "openai")] == "sk-test"
            assert "API key saved for openai" in _transcript(app)

            await _submit(app, pilot, "/keys")
            assert "openai: stored" in _transcript(app)

            await _submit(app, pilot, "/unkey openai")
            assert ("passepartout", "openai") not in memory_keyring.store

            await _submit(app, pilot, "/key mistral x")
            assert "mistral" in _transcript(app)
            assert "sk-test" not in _transcript(app)
