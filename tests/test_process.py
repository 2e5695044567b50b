"""Tests for AgentProcessManager and the scoped handshake secret."""

from __future__ import annotations

import base64
import os
import stat
import warnings

import pytest

from passepartout.engine.config import BridgeConfig
from passepartout.engine.errors import AuthError, ProcessStartError
from passepartout.engine.process import (
    PASSWORD_VAR,
    USERNAME_VAR,
    AgentProcessManager,
    HandshakeSecret,
    find_free_port,
    generate_secret,
)


def _script(tmp_path, name: str, body: str) -> str:
    path = tmp_path / name
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR)
    return str(path)


class TestHandshakeSecret:
    def test_generate_secret(self):
        secret = generate_secret()
        assert len(secret) == 64
        assert secret.isalnum()
        assert generate_secret() != secret

    def test_child_env_carries_credentials_inside_scope(self):
        base = {"PATH": "/bin"}
        with HandshakeSecret("passepartout", base) as secret:
            assert secret.child_env[USERNAME_VAR] == "passepartout"
            assert len(secret.child_env[PASSWORD_VAR]) == 64
            assert secret.auth_header.startswith("Basic ")
        assert base == {"PATH": "/bin"}

    def test_auth_header_encodes_credentials_without_warnings(self):
        with warnings.catch_warnings():
            warnings.simplefilter("error", DeprecationWarning)
            with HandshakeSecret("passepartout", {}) as secret:
                password = secret.child_env[PASSWORD_VAR]
                header = secret.auth_header
        token = base64.b64encode(f"passepartout:{password}".encode()).decode()
        assert header == f"Basic {token}"

    def test_wiped_on_exit(self):
        with HandshakeSecret("u", {}) as secret:
            env = secret.child_env
        assert env == {}
        assert not secret.active
        with pytest.raises(RuntimeError):
            secret.auth_header

    def test_wiped_on_failure(self):
        with pytest.raises(ValueError):
            with HandshakeSecret("u", {}) as secret:
                env = secret.child_env
                raise ValueError("spawn failed")
        assert env == {}
        assert not secret.active

    def test_never_touches_os_environ(self):
        with HandshakeSecret("u", dict(os.environ)):
            assert PASSWORD_VAR not in os.environ


def test_find_free_port():
    port = find_free_port()
    assert 0 < port < 65536


class TestChildEnvironment:
    def test_native_tools_and_provider_keys(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PATH", "/usr/bin")
        monkeypatch.setenv(PASSWORD_VAR, "leftover")
        config = BridgeConfig(native_tools_dir=str(tmp_path))
        manager = AgentProcessManager(
            config, provider_env=lambda: {"ANTHROPIC_API_KEY": "sk-ant-x"},
        )
        env = manager.build_child_env()
        assert env["PATH"] == f"{tmp_path}{os.pathsep}/usr/bin"
        assert env["PLAYWRIGHT_BROWSERS_PATH"] == str(tmp_path / "playwright_browsers")
        assert env["ANTHROPIC_API_KEY"] == "sk-ant-x"
        assert PASSWORD_VAR not in env
        assert "ANTHROPIC_API_KEY" not in os.environ

    def test_bundled_binary_preferred(self, tmp_path):
        bundled = _script(tmp_path, "opencode", "exit 0\n")
        manager = AgentProcessManager(BridgeConfig(native_tools_dir=str(tmp_path)))
        assert manager.resolve_binary("/nonexistent") == bundled

    def test_missing_binary(self, tmp_path):
        manager = AgentProcessManager(BridgeConfig(agent_command="no-such-agent-xyz"))
        with pytest.raises(ProcessStartError, match="not found"):
            manager.resolve_binary(str(tmp_path))


@pytest.mark.asyncio
async def test_spawn_missing_binary_raises(tmp_path):
    config = BridgeConfig(
        agent_command="no-such-agent-xyz", workspace_dir=str(tmp_path),
    )
    manager = AgentProcessManager(config)
    with pytest.raises(ProcessStartError):
        await manager.start()
    assert not manager.running


@pytest.mark.asyncio
async def test_spawn_early_exit_reports_stderr(tmp_path):
    tools = tmp_path / "tools"
    tools.mkdir()
    _script(tools, "opencode", "echo 'port already in use' >&2\nexit 3\n")
    config = BridgeConfig(
        native_tools_dir=str(tools),
        workspace_dir=str(tmp_path / "ws"),
        startup_timeout_seconds=5,
        health_check_interval_seconds=0.05,
    )
    manager = AgentProcessManager(config)
    with pytest.raises(ProcessStartError) as exc_info:
        await manager.start()
    assert "code 3" in str(exc_info.value)
    assert "port already in use" in str(exc_info.value)
    assert manager.pid is None


@pytest.mark.asyncio
async def test_spawn_receives_credentials_and_is_stopped(tmp_path):
    tools = tmp_path / "tools"
    tools.mkdir()
    marker = tmp_path / "env.txt"
    # never answers the health check, so start() must time out
    _script(
        tools, "opencode",
        f'echo "$OPENCODE_SERVER_USERNAME:${{#OPENCODE_SERVER_PASSWORD}}:$3" > {marker}\n'
        "exec sleep 30\n",
    )
    config = BridgeConfig(
        native_tools_dir=str(tools),
        workspace_dir=str(tmp_path / "ws"),
        startup_timeout_seconds=0.5,
        health_check_interval_seconds=0.05,
        shutdown_timeout_seconds=1,
    )
    manager = AgentProcessManager(config)
    with pytest.raises(ProcessStartError, match="no healthy response"):
        await manager.start()
    username, length, port = marker.read_text().strip().split(":")
    assert username == "passepartout"
    assert length == "64"
    assert int(port) > 0
    assert manager.pid is None
    assert not manager.running


@pytest.mark.asyncio
async def test_attach_healthy(agent_server, tmp_path):
    fake, base_url = agent_server
    config = BridgeConfig(
        server_url=base_url, server_password="pw", workspace_dir=str(tmp_path),
    )
    manager = AgentProcessManager(config)
    handle = await manager.start()
    assert manager.running
    assert manager.attached
    assert handle.connection.base_url == base_url
    assert fake.requests[0][1] == "/global/health"
    # start() is idempotent while running
    assert await manager.start() is handle
    await manager.stop()
    await manager.stop()
    assert not manager.running


@pytest.mark.asyncio
async def test_attach_rejected_credential(agent_server, tmp_path):
    fake, base_url = agent_server
    config = BridgeConfig(
        server_url=base_url, server_password="wrong", workspace_dir=str(tmp_path),
    )
    manager = AgentProcessManager(config)
    with pytest.raises(AuthError) as exc_info:
        await manager.start()
    assert exc_info.value.status == 401
    assert not manager.running


@pytest.mark.asyncio
async def test_attach_unhealthy_times_out(agent_server, tmp_path):
    fake, base_url = agent_server
    fake.health_status = 503
    config = BridgeConfig(
        server_url=base_url,
        server_password="pw",
        workspace_dir=str(tmp_path),
        startup_timeout_seconds=0.3,
        health_check_interval_seconds=0.05,
    )
    manager = AgentProcessManager(config)
    with pytest.raises(ProcessStartError, match="HTTP 503"):
        await manager.start()


class TestEnsureBrowser:
    @pytest.mark.asyncio
    async def test_success_combines_stdout_and_stderr(self, tmp_path):
        _script(
            tmp_path, "latchkey",
            "printf 'installed into %s %s' \"$PLAYWRIGHT_BROWSERS_PATH\" \"$1\"\n"
            "printf 'already up to date' >&2\n"
            "exit 0\n",
        )
        manager = AgentProcessManager(BridgeConfig(native_tools_dir=str(tmp_path)))
        result = await manager.ensure_browser()
        assert result.success
        assert result.output == (
            f"installed into {tmp_path / 'playwright_browsers'} ensure-browser\n"
            "already up to date"
        )
        assert not manager.running

    @pytest.mark.asyncio
    async def test_nonzero_exit_is_failure(self, tmp_path):
        _script(tmp_path, "latchkey", "printf 'download failed' >&2\nexit 3\n")
        manager = AgentProcessManager(BridgeConfig(native_tools_dir=str(tmp_path)))
        result = await manager.ensure_browser()
        assert not result.success
        assert result.output == "download failed"
        assert result.to_dict() == {"success": False, "output": "download failed"}

    @pytest.mark.asyncio
    async def test_missing_helper_is_reported(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PATH", str(tmp_path))
        config = BridgeConfig(browser_helper_command="no-such-helper-xyz")
        result = await AgentProcessManager(config).ensure_browser()
        assert not result.success
        assert result.output.startswith("Failed to run no-such-helper-xyz:")
        assert "not found" in result.output
