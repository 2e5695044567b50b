"""Passepartout: main application entry point."""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from passepartout.engine.config import BridgeConfig
from passepartout.engine.errors import BridgeError, ConfigError
from passepartout.engine.model_registry import ModelCatalog
from passepartout.engine.yaml_config import load_yaml_config

logger = logging.getLogger(__name__)

HOME_DIR = Path.home() / ".passepartout"
DEFAULT_CONFIG_PATH = HOME_DIR / "config.yaml"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [pid=%(process)d] %(message)s"


def configure_logging(level: str, log_dir: Path | None = None, stderr: bool = True) -> Path:
    """Rotating file log plus (optionally) stderr. Returns the log file path."""
    log_dir = log_dir or HOME_DIR / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "passepartout.log"

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()
    formatter = logging.Formatter(LOG_FORMAT)
    file_handler = RotatingFileHandler(
        log_file, maxBytes=2_000_000, backupCount=5, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)
    if stderr:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(formatter)
        root.addHandler(stream_handler)
    return log_file


def load_settings(
    config_path: str | None,
    workspace: str | None = None,
    server_url: str | None = None,
) -> tuple[BridgeConfig, ModelCatalog]:
    """Build the bridge config and model catalogue.

    Precedence: command-line flags, then PASSEPARTOUT_* variables, then
    the YAML file, then built-in defaults.
    """
    base = BridgeConfig()
    models = None
    default_model = None
    path = Path(config_path).expanduser() if config_path else DEFAULT_CONFIG_PATH
    if config_path or path.exists():
        loaded = load_yaml_config(path)
        base = loaded.bridge
        models = loaded.models or None
        default_model = loaded.default_model

    config = BridgeConfig.from_env(base)
    overrides = {}
    if workspace:
        overrides["workspace_dir"] = workspace
    if server_url:
        overrides["server_url"] = server_url
    if overrides:
        config = config.merged(overrides)

    try:
        catalog = ModelCatalog(models, default=default_model)
    except ValueError as exc:
        raise ConfigError(str(path), str(exc)) from exc
    return config, catalog


async def run_once(bridge, message: str) -> int:
    """Start the bridge, send one message, print the answer and its log."""
    from passepartout.tui.widgets.conversation import format_entry
    from rich.console import Console
    from rich.markup import escape

    console = Console()

    def show_status(update) -> None:
        if update.message:
            console.print(f"[dim]{escape(update.message)}[/dim]", highlight=False)

    unsubscribe = bridge.subscribe_status(show_status)
    try:
        async with bridge:
            result = await bridge.send_message(message)
    finally:
        unsubscribe()
    console.print(result.text, markup=False, highlight=False)
    for entry in result.log:
        console.print(format_entry(entry), highlight=False)
    return 0 if result.success else 1


def main() -> None:
    import argparse

    parser = argparse.ArgumentParser(
        prog="passepartout",
        description="Passepartout: chat with a local coding agent",
    )
    parser.add_argument(
        "--config", metavar="PATH",
        help=f"YAML config file (default: {DEFAULT_CONFIG_PATH} if present)",
    )
    parser.add_argument(
        "--log-level", metavar="LEVEL",
        help="Logging level (default: PASSEPARTOUT_LOG_LEVEL or INFO)",
    )
    parser.add_argument(
        "--workspace", metavar="DIR",
        help="Directory the agent works in (default: current directory)",
    )
    parser.add_argument(
        "--server-url", metavar="URL",
        help="Attach to an already running agent server instead of spawning one",
    )
    parser.add_argument(
        "--once", metavar="MESSAGE",
        help="Send one message without the TUI, print the answer and exit",
    )
    parser.add_argument(
        "--list-models", action="store_true",
        help="List selectable models and exit",
    )
    parser.add_argument(
        "--ensure-browser", action="store_true",
        help="Install the browser used by the agent's web tools and exit",
    )
    args = parser.parse_args()

    headless = bool(args.once or args.list_models or args.ensure_browser)
    log_level = (
        args.log_level or os.getenv("PASSEPARTOUT_LOG_LEVEL") or "INFO"
    ).upper()
    log_file = configure_logging(log_level, stderr=headless)

    try:
        config, catalog = load_settings(args.config, args.workspace, args.server_url)
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(2)

    if args.list_models:
        for option in catalog.list_models():
            marker = "*" if option == catalog.current else " "
            print(f" {marker} {option.key:<45} {option.label}")
        sys.exit(0)

    from passepartout.adapters.bridge import AgentBridge

    bridge = AgentBridge(config, catalog=catalog)
    logger.info(
        "Starting passepartout cwd=%s workspace=%s log=%s",
        Path.cwd(), config.workspace_path, log_file,
    )

    if args.ensure_browser:
        result = asyncio.run(bridge.ensure_browser())
        print(result.output)
        sys.exit(0 if result.success else 1)

    if args.once:
        try:
            code = asyncio.run(run_once(bridge, args.once))
        except BridgeError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            sys.exit(1)
        sys.exit(code)

    from passepartout.tui.app import PassepartoutApp

    PassepartoutApp(bridge).run()


if __name__ == "__main__":
    main()
