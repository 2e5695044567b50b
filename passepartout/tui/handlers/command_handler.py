"""Slash-command handler for the chat app.

Every command goes through the AgentBridge; the handler only formats
the outcome into the conversation log.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from rich.markup import escape

from passepartout.engine.errors import CredentialError
from passepartout.shared.commands import COMMAND_HELP

if TYPE_CHECKING:
    from passepartout.tui.app import PassepartoutApp
    from passepartout.tui.widgets.conversation import ConversationLog

logger = logging.getLogger(__name__)


class CommandHandler:
    """Processes slash commands on behalf of PassepartoutApp."""

    def __init__(self, app: PassepartoutApp) -> None:
        self._app = app

    @property
    def _log(self) -> ConversationLog:
        from passepartout.tui.widgets.conversation import ConversationLog

        return self._app.query_one("#conversation", ConversationLog)

    def handle_command(self, name: str, args: list[str]) -> bool:
        """Dispatch a slash command. Returns True if handled."""
        log = self._log
        name = name.lower()

        dispatch = {
            "help": lambda: self._cmd_help(log),
            "model": lambda: self._cmd_model(args, log),
            "keys": lambda: self._cmd_keys(log),
            "key": lambda: self._cmd_key(args, log),
            "unkey": lambda: self._cmd_unkey(args, log),
        }

        handler = dispatch.get(name)
        if handler:
            handler()
            return True

        log.write(
            f"[red]Unknown command:[/red] /{escape(name)}. "
            "Type /help for available commands."
        )
        return False

    def _cmd_help(self, log: ConversationLog) -> None:
        log.write("[bold]Available commands:[/bold]")
        for cmd, desc in COMMAND_HELP.items():
            log.write(f"  [cyan]/{cmd}[/cyan] -- {escape(desc)}")

    def _cmd_model(self, args: list[str], log: ConversationLog) -> None:
        bridge = self._app.bridge
        if not args:
            current = bridge.current_model
            log.write(f"Current model: [cyan]{current.label}[/cyan] ({current.key})")
            return
        if args[0].lower() == "list":
            current = bridge.current_model
            for option in bridge.available_models():
                marker = "*" if option == current else " "
                log.write(f" {marker} [cyan]{option.key}[/cyan]  {escape(option.label)}")
            return
        selector = " ".join(args)
        try:
            option = bridge.set_model(selector)
        except ValueError as exc:
            log.write(f"[red]{escape(str(exc))}[/red]. Try /model list")
            return
        self._app.show_model(option.label)
        log.write(f"[green]Model switched to[/green] {escape(option.label)}")

    def _cmd_keys(self, log: ConversationLog) -> None:
        try:
            statuses = self._app.bridge.list_credential_status()
        except CredentialError as exc:
            log.write(f"[red]{escape(str(exc))}[/red]")
            return
        for status in statuses:
            flag = "[green]stored[/green]" if status.has_key else "[dim]not set[/dim]"
            log.write(f"  {status.provider_id}: {flag}")

    def _cmd_key(self, args: list[str], log: ConversationLog) -> None:
        if len(args) != 2:
            log.write("[red]Usage:[/red] /key PROVIDER API_KEY")
            return
        provider, secret = args
        try:
            self._app.bridge.save_credential(provider, secret)
        except CredentialError as exc:
            log.write(f"[red]{escape(str(exc))}[/red]")
            return
        log.write(
            f"[green]API key saved for {escape(provider.lower())}[/green] "
            "[dim](used the next time the agent starts)[/dim]"
        )

    def _cmd_unkey(self, args: list[str], log: ConversationLog) -> None:
        if len(args) != 1:
            log.write("[red]Usage:[/red] /unkey PROVIDER")
            return
        try:
            self._app.bridge.delete_credential(args[0])
        except CredentialError as exc:
            log.write(f"[red]{escape(str(exc))}[/red]")
            return
        log.write(f"[green]API key removed for {escape(args[0].lower())}[/green]")
