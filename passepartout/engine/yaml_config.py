"""YAML configuration loader.

Loads a single YAML file on top of the built-in defaults. Environment
variables still win over anything set here.

Example YAML:
    agent:
      command: opencode
      native_tools_dir: ~/Applications/passepartout/native_tools
      workspace_dir: ~/passepartout-workspace
      # server_url: http://127.0.0.1:4096   # attach instead of spawning

    bridge:
      request_timeout_seconds: 300
      settle_timeout_seconds: 1.0
      stream_reconnect_attempts: 3

    models:
      - provider: anthropic
        model_id: claude-sonnet-4-5-20250929
        name: Claude Sonnet 4.5
      - provider: openai
        model_id: gpt-4o
        name: GPT-4o

    defaults:
      model: anthropic:claude-sonnet-4-5-20250929
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from passepartout.engine.config import BridgeConfig
from passepartout.engine.errors import ConfigError
from passepartout.engine.models import ModelOption

logger = logging.getLogger(__name__)

# agent: keys that are spelled differently from the BridgeConfig field
_AGENT_KEY_ALIASES = {
    "command": "agent_command",
    "username": "server_username",
    "password": "server_password",
}


@dataclass
class LoadedConfig:
    """Complete parsed YAML configuration."""
    bridge: BridgeConfig
    models: list[ModelOption] = field(default_factory=list)
    default_model: str | None = None


def _section(raw: dict[str, Any], name: str, path: Path) -> dict[str, Any]:
    value = raw.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(str(path), f"'{name}' must be a mapping")
    return value


def _parse_models(raw: Any, path: Path) -> list[ModelOption]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ConfigError(str(path), "'models' must be a list")
    models: list[ModelOption] = []
    for idx, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ConfigError(str(path), f"models[{idx}] must be a mapping")
        provider = item.get("provider")
        model_id = item.get("model_id")
        if not provider or not model_id:
            raise ConfigError(
                str(path), f"models[{idx}] needs 'provider' and 'model_id'"
            )
        models.append(
            ModelOption(
                provider_id=str(provider).lower(),
                model_id=str(model_id),
                display_name=str(item.get("name") or ""),
            )
        )
    return models


def load_yaml_config(path: str | Path) -> LoadedConfig:
    """Load and parse a YAML config file.

    Unknown keys are logged and ignored; structural problems raise
    ConfigError.
    """
    path = Path(path).expanduser()
    logger.info(
        "load_yaml_config: loading %s (exists=%s)", path, path.exists(),
    )
    try:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError as exc:
        raise ConfigError(str(path), "file not found") from exc
    except yaml.YAMLError as exc:
        logger.error("load_yaml_config: YAML parse error in %s: %s", path, exc)
        raise ConfigError(str(path), f"YAML parse error: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError(str(path), "top level must be a mapping")

    top_sections = sorted(raw.keys())
    logger.info(
        "Parsed YAML config %s, sections: %s",
        path.name, ", ".join(top_sections) if top_sections else "(empty)",
    )
    for key in top_sections:
        if key not in ("agent", "bridge", "models", "defaults"):
            logger.warning("load_yaml_config: ignoring unknown section '%s'", key)

    overrides: dict[str, Any] = {}
    for key, value in _section(raw, "agent", path).items():
        overrides[_AGENT_KEY_ALIASES.get(key, key)] = value
    overrides.update(_section(raw, "bridge", path))
    bridge = BridgeConfig().merged(overrides)

    defaults = _section(raw, "defaults", path)
    default_model = defaults.get("model")

    return LoadedConfig(
        bridge=bridge,
        models=_parse_models(raw.get("models"), path),
        default_model=str(default_model) if default_model else None,
    )
