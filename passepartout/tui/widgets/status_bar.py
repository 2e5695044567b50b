"""Status bar: bottom line with the live agent status and model."""

from __future__ import annotations

import time
from typing import Optional

from rich.text import Text
from textual.reactive import reactive
from textual.timer import Timer
from textual.widget import Widget

from passepartout.engine.models import StatusKind, StatusUpdate


def _format_elapsed(seconds: float) -> str:
    secs = int(seconds)
    if secs < 60:
        return f"{secs}s"
    m, s = divmod(secs, 60)
    return f"{m}m {s}s"


_KIND_STYLES = {
    StatusKind.BUSY.value: "yellow",
    StatusKind.TOOL.value: "cyan",
    StatusKind.TOOL_COMPLETED.value: "green",
    StatusKind.TOOL_ERROR.value: "red",
    StatusKind.REASONING.value: "magenta",
    StatusKind.GENERATING.value: "blue",
    StatusKind.RETRY.value: "yellow bold",
}


class StatusBar(Widget):
    """Single-line status bar fed by bridge status updates."""

    model: reactive[str] = reactive("-")
    connection: reactive[str] = reactive("starting")
    kind: reactive[str] = reactive(StatusKind.IDLE.value)
    message: reactive[str] = reactive("")

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._working_since: Optional[float] = None
        self._elapsed_timer: Timer | None = None

    def apply(self, update: StatusUpdate) -> None:
        """Show *update*; idle clears the message."""
        self.kind = update.kind.value
        self.message = update.message or ""

    def watch_kind(self, old_value: str, new_value: str) -> None:
        idle = StatusKind.IDLE.value
        if old_value == idle and new_value != idle:
            self._working_since = time.monotonic()
            if self._elapsed_timer is None:
                self._elapsed_timer = self.set_interval(1.0, self.refresh)
        elif new_value == idle:
            self._working_since = None
            if self._elapsed_timer is not None:
                self._elapsed_timer.stop()
                self._elapsed_timer = None

    def render(self) -> Text:
        connection_colors = {
            "ready": "green",
            "starting": "yellow",
            "error": "red bold",
            "stopped": "red",
        }
        bar = Text()
        bar.append(" passepartout ", style="bold")
        bar.append(" | ", style="dim")
        bar.append(self.model, style="cyan")
        bar.append(" | ", style="dim")
        bar.append(f"● {self.connection}", style=connection_colors.get(self.connection, "white"))
        if self.message:
            bar.append(" | ", style="dim")
            display = self.message
            if self._working_since is not None:
                display += f" ({_format_elapsed(time.monotonic() - self._working_since)})"
            bar.append(display, style=_KIND_STYLES.get(self.kind, "white"))
        return bar
