"""Agent server process lifecycle.

Spawns ``opencode serve --port N`` (or attaches to an already running
server), waits for its health endpoint and hands out a SessionHandle
bound to the authenticated connection.

Each spawned server gets a fresh random password. The secret lives only
inside a HandshakeSecret scope: it is written into the explicit child
environment (never ``os.environ``) and wiped when the scope exits,
whether the spawn succeeded or not.
"""
from __future__ import annotations

import asyncio
import collections
import logging
import os
import secrets
import shutil
import socket
import string
from pathlib import Path
from typing import Callable, Mapping

import aiohttp

from passepartout.engine.config import BridgeConfig
from passepartout.engine.errors import AuthError, ProcessStartError
from passepartout.engine.models import BrowserCheckResult
from passepartout.engine.session import SessionHandle
from passepartout.engine.transport import AgentConnection

logger = logging.getLogger(__name__)

HEALTH_PATH = "/global/health"
USERNAME_VAR = "OPENCODE_SERVER_USERNAME"
PASSWORD_VAR = "OPENCODE_SERVER_PASSWORD"
SECRET_LENGTH = 64
_SECRET_ALPHABET = string.ascii_letters + string.digits
_STDERR_TAIL_LINES = 20


def generate_secret(length: int = SECRET_LENGTH) -> str:
    """Random alphanumeric string from the OS CSPRNG."""
    return "".join(secrets.choice(_SECRET_ALPHABET) for _ in range(length))


def find_free_port(host: str = "127.0.0.1") -> int:
    """Ask the OS for an unused TCP port on *host*."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((host, 0))
        return sock.getsockname()[1]


class HandshakeSecret:
    """Scoped per-run server credential.

    Usage::

        with HandshakeSecret("passepartout", env) as secret:
            spawn(env=secret.child_env)
            header = secret.auth_header
        # secret.child_env is now empty and the password is gone
    """

    def __init__(
        self,
        username: str,
        base_env: Mapping[str, str],
        length: int = SECRET_LENGTH,
    ) -> None:
        self.username = username
        self._base_env = base_env
        self._length = length
        self._password: str | None = None
        self.child_env: dict[str, str] = {}

    @property
    def active(self) -> bool:
        return self._password is not None

    @property
    def auth_header(self) -> str:
        if self._password is None:
            raise RuntimeError("Handshake secret is not active")
        return aiohttp.encode_basic_auth(self.username, self._password)

    def __enter__(self) -> HandshakeSecret:
        self._password = generate_secret(self._length)
        self.child_env = dict(self._base_env)
        self.child_env[USERNAME_VAR] = self.username
        self.child_env[PASSWORD_VAR] = self._password
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.child_env.clear()
        self._password = None


class AgentProcessManager:
    """Owns the agent server process (or attached address) for one run.

    ``provider_env`` returns extra variables for the child, typically the
    provider API keys from the credential store.
    """

    def __init__(
        self,
        config: BridgeConfig,
        provider_env: Callable[[], dict[str, str]] | None = None,
    ) -> None:
        self.config = config
        self._provider_env = provider_env
        self._process: asyncio.subprocess.Process | None = None
        self._connection: AgentConnection | None = None
        self._handle: SessionHandle | None = None
        self._stderr_tail: collections.deque[str] = collections.deque(
            maxlen=_STDERR_TAIL_LINES
        )
        self._stderr_task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        if self._connection is None or self._connection.closed:
            return False
        return self._process is None or self._process.returncode is None

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def connection(self) -> AgentConnection | None:
        return self._connection

    @property
    def attached(self) -> bool:
        return bool(self.config.server_url)

    async def start(self) -> SessionHandle:
        """Bring the agent server up and return a handle bound to it."""
        if self._handle is not None and self.running:
            return self._handle
        if self.attached:
            connection = await self._attach()
        else:
            connection = await self._spawn()
        self._connection = connection
        self._handle = SessionHandle(self, connection)
        return self._handle

    async def stop(self) -> None:
        """Close the connection and stop the child. Safe to call repeatedly."""
        self._handle = None
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
        await self._terminate()

    # ── Startup ──

    async def _attach(self) -> AgentConnection:
        auth_header = None
        if self.config.server_password:
            auth_header = aiohttp.encode_basic_auth(
                self.config.server_username, self.config.server_password,
            )
        connection = AgentConnection(
            self.config.server_url,
            auth_header=auth_header,
            directory=str(self.config.workspace_path),
            request_timeout=self.config.request_timeout_seconds,
        )
        logger.info("Attaching to agent server at %s", connection.base_url)
        await connection.open()
        try:
            await self._wait_healthy(connection)
        except BaseException:
            await connection.close()
            raise
        return connection

    async def _spawn(self) -> AgentConnection:
        port = self.config.port or find_free_port(self.config.host)
        base_url = f"http://{self.config.host}:{port}"
        env = self.build_child_env()
        binary = self.resolve_binary(env.get("PATH"))
        workspace = self.config.workspace_path
        workspace.mkdir(parents=True, exist_ok=True)

        with HandshakeSecret(self.config.server_username, env) as secret:
            try:
                proc = await asyncio.create_subprocess_exec(
                    binary, "serve", "--port", str(port),
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.DEVNULL,
                    stderr=asyncio.subprocess.PIPE,
                    env=secret.child_env,
                    cwd=str(workspace),
                )
            except (FileNotFoundError, PermissionError) as exc:
                raise ProcessStartError(f"cannot execute {binary}: {exc}") from exc
            connection = AgentConnection(
                base_url,
                auth_header=secret.auth_header,
                directory=str(workspace),
                request_timeout=self.config.request_timeout_seconds,
            )

        self._process = proc
        self._stderr_tail.clear()
        self._stderr_task = asyncio.create_task(self._drain_stderr(proc))
        logger.info(
            "Agent server spawned (pid=%d) on %s, workspace=%s",
            proc.pid, base_url, workspace,
        )

        await connection.open()
        try:
            await self._wait_healthy(connection)
        except BaseException:
            await connection.close()
            await self._terminate()
            raise
        return connection

    def build_tools_env(self) -> dict[str, str]:
        """Current environment with the native tools dir on PATH."""
        env = dict(os.environ)
        env.pop(USERNAME_VAR, None)
        env.pop(PASSWORD_VAR, None)
        tools = self.config.native_tools_path
        if tools is not None:
            current = env.get("PATH", "")
            env["PATH"] = f"{tools}{os.pathsep}{current}" if current else str(tools)
            env["PLAYWRIGHT_BROWSERS_PATH"] = str(tools / "playwright_browsers")
        return env

    def build_child_env(self) -> dict[str, str]:
        """Environment for the agent, minus the handshake credential."""
        env = self.build_tools_env()
        if self._provider_env is not None:
            provider_vars = self._provider_env()
            env.update(provider_vars)
            if provider_vars:
                logger.info(
                    "Passing provider keys to agent: %s",
                    ", ".join(sorted(provider_vars)),
                )
        return env

    def resolve_binary(
        self,
        search_path: str | None = None,
        command: str | None = None,
    ) -> str:
        """Locate an executable (the agent by default), preferring the bundled tools dir."""
        command = command or self.config.agent_command
        tools = self.config.native_tools_path
        if tools is not None:
            bundled = tools / command
            if bundled.is_file() and os.access(bundled, os.X_OK):
                return str(bundled)
        if os.sep in command:
            path = Path(command).expanduser()
            if path.is_file() and os.access(path, os.X_OK):
                return str(path)
            raise ProcessStartError(f"executable not found: {command}")
        found = shutil.which(command, path=search_path)
        if found is None:
            raise ProcessStartError(
                f"'{command}' not found on PATH. Install it or set native_tools_dir."
            )
        return found

    async def ensure_browser(self) -> BrowserCheckResult:
        """Run ``<browser_helper_command> ensure-browser`` to completion.

        Failing to launch the helper is reported in the result, not raised.
        """
        command = self.config.browser_helper_command
        env = self.build_tools_env()
        try:
            binary = self.resolve_binary(env.get("PATH"), command=command)
            proc = await asyncio.create_subprocess_exec(
                binary, "ensure-browser",
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except (ProcessStartError, OSError) as exc:
            message = f"Failed to run {command}: {exc}"
            logger.error("Browser check: %s", message)
            return BrowserCheckResult(success=False, output=message)

        logger.info("Running %s ensure-browser (pid=%d)", binary, proc.pid)
        stdout, stderr = await proc.communicate()
        out = stdout.decode("utf-8", errors="replace")
        err = stderr.decode("utf-8", errors="replace")
        if not err:
            output = out
        elif not out:
            output = err
        else:
            output = f"{out}\n{err}"
        success = proc.returncode == 0
        logger.info(
            "%s ensure-browser finished (exit=%s, %d chars of output)",
            command, proc.returncode, len(output),
        )
        return BrowserCheckResult(success=success, output=output)

    async def _wait_healthy(self, connection: AgentConnection) -> None:
        loop = asyncio.get_running_loop()
        interval = self.config.health_check_interval_seconds
        deadline = loop.time() + self.config.startup_timeout_seconds
        health_url = connection.url(HEALTH_PATH)
        attempt = 0
        last_error = "no response"

        while True:
            attempt += 1
            proc = self._process
            if proc is not None and proc.returncode is not None:
                # Let the stderr reader catch up before reporting
                if self._stderr_task is not None:
                    await asyncio.wait({self._stderr_task}, timeout=0.5)
                raise ProcessStartError(
                    f"agent exited with code {proc.returncode} before becoming "
                    f"healthy{self._format_stderr_tail()}"
                )
            try:
                status = await connection.get_status(
                    HEALTH_PATH, timeout=max(interval * 4, 2.0),
                )
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                status = None
                last_error = str(exc) or type(exc).__name__

            if status == 200:
                logger.info("Agent server healthy after %d attempt(s)", attempt)
                return
            if status in (401, 403):
                raise AuthError(status, health_url)
            if status is not None:
                last_error = f"HTTP {status}"

            if attempt % 10 == 0:
                logger.info(
                    "Waiting for agent server (attempt %d): %s", attempt, last_error,
                )
            if loop.time() >= deadline:
                raise ProcessStartError(
                    f"no healthy response from {health_url} within "
                    f"{self.config.startup_timeout_seconds:g}s ({last_error})"
                )
            await asyncio.sleep(interval)

    # ── Shutdown ──

    async def _terminate(self) -> None:
        proc = self._process
        self._process = None
        if proc is not None and proc.returncode is None:
            pid = proc.pid
            try:
                proc.terminate()
                try:
                    await asyncio.wait_for(
                        proc.wait(), timeout=self.config.shutdown_timeout_seconds,
                    )
                except asyncio.TimeoutError:
                    logger.warning("Agent server did not exit, killing (pid=%d)", pid)
                    proc.kill()
                    await proc.wait()
                logger.info("Agent server stopped (pid=%d)", pid)
            except ProcessLookupError:
                pass
        task = self._stderr_task
        self._stderr_task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _drain_stderr(self, proc: asyncio.subprocess.Process) -> None:
        if proc.stderr is None:
            return
        while True:
            line = await proc.stderr.readline()
            if not line:
                break
            text = line.decode("utf-8", errors="replace").rstrip()
            if text:
                self._stderr_tail.append(text)
                logger.debug("agent: %s", text)

    def _format_stderr_tail(self) -> str:
        if not self._stderr_tail:
            return ""
        return ":\n" + "\n".join(self._stderr_tail)
