"""Slash command parser and help table."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ParsedCommand:
    """A parsed slash command."""

    name: str
    args: list[str]
    raw: str


def parse_command(text: str) -> ParsedCommand | None:
    """Parse a /command from input text.

    Returns None if text does not start with '/'.
    """
    stripped = text.strip()
    if not stripped.startswith("/") or stripped == "/":
        return None
    parts = stripped.split()
    name = parts[0][1:].lower()
    return ParsedCommand(name=name, args=parts[1:], raw=stripped)


COMMAND_HELP: dict[str, str] = {
    "model": "/model [list|PROVIDER:MODEL] - show, list or switch the model",
    "keys": "Show which providers have an API key stored",
    "key": "/key PROVIDER API_KEY - store an API key in the system keyring",
    "unkey": "/unkey PROVIDER - remove a stored API key",
    "help": "Show this help message",
}
