"""Passepartout TUI: Textual chat front-end over an AgentBridge."""

from __future__ import annotations

from typing import Callable

from rich.markup import escape
from textual import work
from textual.app import App, ComposeResult
from textual.widgets import Header, Input

from passepartout.adapters.bridge import AgentBridge
from passepartout.engine.errors import BridgeError, ConcurrentPromptError
from passepartout.engine.models import StatusUpdate
from passepartout.shared.commands import parse_command
from passepartout.tui.handlers.command_handler import CommandHandler
from passepartout.tui.widgets.conversation import ConversationLog
from passepartout.tui.widgets.status_bar import StatusBar


class PassepartoutApp(App):
    """Chat with one coding-agent session."""

    TITLE = "Passepartout"
    SUB_TITLE = "Agent Bridge"

    CSS = """
    #conversation {
        height: 1fr;
        border: round $primary;
        padding: 0 1;
    }
    #prompt {
        dock: bottom;
        margin-bottom: 1;
    }
    StatusBar {
        dock: bottom;
        height: 1;
        background: $panel;
    }
    """

    BINDINGS = [
        ("ctrl+q", "quit", "Quit"),
        ("ctrl+l", "clear_conversation", "Clear"),
        ("escape", "blur", "Blur"),
    ]

    def __init__(self, bridge: AgentBridge, **kwargs) -> None:
        super().__init__(**kwargs)
        self.bridge = bridge
        self.command_handler = CommandHandler(self)
        self._unsubscribe: Callable[[], None] | None = None

    def compose(self) -> ComposeResult:
        yield Header()
        yield ConversationLog(id="conversation")
        yield StatusBar()
        yield Input(placeholder="Message the agent, or /help", id="prompt")

    def on_mount(self) -> None:
        self.show_model(self.bridge.current_model.label)
        self._unsubscribe = self.bridge.subscribe_status(self._on_status)
        self.query_one("#prompt", Input).focus()
        self.start_bridge()

    async def on_unmount(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        await self.bridge.shutdown()

    def show_model(self, label: str) -> None:
        self.query_one(StatusBar).model = label

    def _on_status(self, update: StatusUpdate) -> None:
        self.query_one(StatusBar).apply(update)

    @work(exclusive=True, group="bridge", name="start-bridge")
    async def start_bridge(self) -> None:
        bar = self.query_one(StatusBar)
        conversation = self.query_one("#conversation", ConversationLog)
        bar.connection = "starting"
        try:
            await self.bridge.start()
        except BridgeError as exc:
            bar.connection = "error"
            conversation.write_system(
                f"[red]Could not start the agent:[/red] {escape(str(exc))}"
            )
            return
        bar.connection = "ready"
        conversation.write_system("[dim]Agent ready. Type /help for commands.[/dim]")

    def on_input_submitted(self, event: Input.Submitted) -> None:
        text = event.value.strip()
        event.input.value = ""
        if not text:
            return
        command = parse_command(text)
        if command is not None:
            self.command_handler.handle_command(command.name, command.args)
            return
        conversation = self.query_one("#conversation", ConversationLog)
        if not self.bridge.ready:
            conversation.write_system("[yellow]The agent is not running yet.[/yellow]")
            return
        if self.bridge.busy:
            conversation.write_system(
                "[yellow]Still working on the previous message.[/yellow]"
            )
            return
        conversation.write_user(text)
        self.send_message(text)

    @work(group="prompt", name="send-message")
    async def send_message(self, text: str) -> None:
        conversation = self.query_one("#conversation", ConversationLog)
        try:
            result = await self.bridge.send_message(text)
        except ConcurrentPromptError:
            conversation.write_system(
                "[yellow]Still working on the previous message.[/yellow]"
            )
            return
        except BridgeError as exc:
            conversation.write_system(f"[red]{escape(str(exc))}[/red]")
            return
        conversation.write_result(result)

    def action_clear_conversation(self) -> None:
        self.query_one("#conversation", ConversationLog).clear()

    def action_blur(self) -> None:
        self.screen.set_focus(None)
