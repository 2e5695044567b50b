"""Configuration loaded from environment variables.

All settings have sensible defaults. Override via PASSEPARTOUT_* env vars
or a YAML file (see yaml_config.py).
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from passepartout.engine.errors import ConfigError

logger = logging.getLogger(__name__)

ENV_PREFIX = "PASSEPARTOUT_"


@dataclass
class BridgeConfig:
    """Agent bridge configuration."""

    # Backend agent process. When server_url is set the bridge attaches to
    # an already-running server instead of spawning agent_command.
    agent_command: str = "opencode"
    server_url: str | None = None
    server_username: str = "passepartout"
    # Only used in attach mode; spawned servers get a fresh per-run secret.
    server_password: str | None = None
    host: str = "127.0.0.1"
    port: int = 0  # 0 = pick a free port
    native_tools_dir: str | None = None
    workspace_dir: str | None = None

    # Session
    session_title: str = "Chat Session"

    # Timing
    startup_timeout_seconds: float = 30.0
    health_check_interval_seconds: float = 0.5
    request_timeout_seconds: float = 300.0
    # How long a finished prompt waits for the closing idle event so that
    # trailing status updates land in its execution log.
    settle_timeout_seconds: float = 1.0
    shutdown_timeout_seconds: float = 5.0

    # Event stream resubscription. 0 disables it.
    stream_reconnect_attempts: int = 0
    stream_reconnect_delay_seconds: float = 1.0

    # Credentials
    keyring_service: str = "passepartout"

    # Helper that installs the browser used by the agent's web tools
    browser_helper_command: str = "latchkey"

    # Logging
    log_level: str = "INFO"

    @property
    def native_tools_path(self) -> Path | None:
        if not self.native_tools_dir:
            return None
        return Path(self.native_tools_dir).expanduser()

    @property
    def workspace_path(self) -> Path:
        if self.workspace_dir:
            return Path(self.workspace_dir).expanduser().resolve()
        return Path.cwd()

    def merged(self, overrides: dict[str, Any]) -> BridgeConfig:
        """Return a copy with *overrides* applied (unknown keys ignored)."""
        known = {f.name for f in fields(self)}
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        for key, value in overrides.items():
            if key not in known:
                logger.warning("Ignoring unknown bridge setting: %s", key)
                continue
            values[key] = value
        return BridgeConfig(**values)

    @classmethod
    def from_env(cls, base: BridgeConfig | None = None) -> BridgeConfig:
        """Load configuration from PASSEPARTOUT_* environment variables.

        Values from *base* (e.g. a YAML file) are used where no variable
        is set.
        """
        base = base or cls()
        env_vars = sorted(
            k for k in os.environ
            if k.startswith(ENV_PREFIX) and k != f"{ENV_PREFIX}SERVER_PASSWORD"
        )
        if env_vars:
            logger.info(
                "BridgeConfig.from_env: env overrides: %s", ", ".join(env_vars),
            )
        else:
            logger.debug("BridgeConfig.from_env: no %s* env vars set", ENV_PREFIX)

        overrides: dict[str, Any] = {}
        for f in fields(cls):
            raw = os.getenv(f"{ENV_PREFIX}{f.name.upper()}")
            if raw is None:
                continue
            overrides[f.name] = _coerce(f.name, str(f.type), raw)

        config = base.merged(overrides)
        logger.info(
            "BridgeConfig.from_env: command=%s server_url=%s workspace=%s log_level=%s",
            config.agent_command,
            config.server_url or "<spawn>",
            config.workspace_dir or "<cwd>",
            config.log_level,
        )
        return config


def _coerce(name: str, type_name: str, raw: str) -> Any:
    """Convert an env string to the field's declared type."""
    try:
        if type_name == "bool":
            return raw.lower() in {"1", "true", "yes"}
        if type_name == "int":
            return int(raw)
        if type_name == "float":
            return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{ENV_PREFIX}{name.upper()}", str(exc)) from exc
    if type_name == "str":
        return raw
    return raw or None
