"""Conversation log: user messages, answers and their execution logs."""

from __future__ import annotations

from rich.markup import escape
from textual.widgets import RichLog

from passepartout.engine.models import ExecutionLogEntry, PromptResult, StatusKind

_ENTRY_MARKS = {
    StatusKind.TOOL: ("cyan", "›"),
    StatusKind.TOOL_COMPLETED: ("green", "✓"),
    StatusKind.TOOL_ERROR: ("red", "✗"),
    StatusKind.RETRY: ("yellow", "↻"),
}


def format_entry(entry: ExecutionLogEntry) -> str:
    """One markup line for an execution log entry."""
    color, mark = _ENTRY_MARKS.get(entry.kind, ("dim", "·"))
    line = f"  [{color}]{mark}[/{color}] [dim]{escape(entry.display_message)}[/dim]"
    if entry.details is not None and entry.details.duration is not None:
        line += f" [dim]({entry.details.duration}ms)[/dim]"
    return line


class ConversationLog(RichLog):
    """Scrolling chat transcript."""

    def __init__(self, **kwargs) -> None:
        super().__init__(
            auto_scroll=True,
            wrap=True,
            markup=True,
            highlight=False,
            max_lines=5000,
            **kwargs,
        )

    def write_user(self, text: str) -> None:
        self.write(f"[bold]You:[/bold] {escape(text)}")

    def write_result(self, result: PromptResult) -> None:
        if result.success:
            self.write(f"[bold green]Agent:[/bold green] {escape(result.text)}")
        else:
            self.write(f"[bold red]Agent:[/bold red] {escape(result.text)}")
        if result.log:
            self.write(f"  [dim]{len(result.log)} step(s):[/dim]")
            for entry in result.log:
                self.write(format_entry(entry))

    def write_system(self, markup: str) -> None:
        self.write(markup)
