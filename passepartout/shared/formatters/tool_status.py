"""Tool descriptions and input summaries for the live status line.

Every tool call gets two summaries of its input: a short one for the
status line and an untruncated one for the execution log. Summaries are
picked by field-name convention per tool; unknown tools get none.

Adding a new tool requires only a single decorated function:

    @status_formatter("my_tool")
    def _summarize_my_tool(tool_input):
        return ToolSummary(short=..., full=...)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable
from urllib.parse import urlparse


_DESCRIPTIONS: dict[str, str] = {
    "read": "Reading file",
    "write": "Writing file",
    "edit": "Editing file",
    "bash": "Running command",
    "glob": "Searching files",
    "grep": "Searching content",
    "list_directory": "Listing directory",
    "web_search": "Searching the web",
    "web_fetch": "Fetching webpage",
}

# Alternate spellings some agents use for the same tools
_TOOL_NAME_ALIASES: dict[str, str] = {
    "list": "list_directory",
    "ls": "list_directory",
    "websearch": "web_search",
    "webfetch": "web_fetch",
}


@dataclass(frozen=True)
class ToolSummary:
    """Input summary at two levels of detail."""

    short: str = ""
    full: str = ""

    def __bool__(self) -> bool:
        return bool(self.short or self.full)


_FORMATTERS: dict[str, Callable[[dict[str, Any]], ToolSummary]] = {}


def status_formatter(*names: str):
    """Decorator to register a summary formatter for one or more tools."""

    def decorator(fn: Callable[[dict[str, Any]], ToolSummary]):
        for name in names:
            _FORMATTERS[name] = fn
        return fn

    return decorator


def normalize_tool_name(name: str) -> str:
    lowered = name.lower()
    return _TOOL_NAME_ALIASES.get(lowered, lowered)


def describe_tool(tool_name: str, title: str | None = None) -> str:
    """Human label for a tool call.

    A title supplied by the agent wins over the built-in table.
    """
    if title:
        return title
    return _DESCRIPTIONS.get(normalize_tool_name(tool_name), f"Running {tool_name}")


def summarize_input(tool_name: str, tool_input: dict[str, Any] | None) -> ToolSummary:
    """Dispatch to the registered formatter for *tool_name*."""
    if not tool_input:
        return ToolSummary()
    formatter = _FORMATTERS.get(normalize_tool_name(tool_name))
    if formatter is None:
        return ToolSummary()
    return formatter(tool_input)


def truncate(text: str, max_len: int) -> str:
    """Keep *text* within *max_len* characters, ending in "..." when cut."""
    if len(text) <= max_len:
        return text
    return text[: max(max_len - 3, 0)] + "..."


def _str_field(tool_input: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = tool_input.get(key)
        if isinstance(value, str) and value:
            return value
    return ""


# ── Formatters ──


@status_formatter("read", "write", "edit")
def _summarize_file(tool_input: dict[str, Any]) -> ToolSummary:
    path = _str_field(tool_input, "file_path", "path", "filename")
    if not path:
        return ToolSummary()
    return ToolSummary(short=path.rsplit("/", 1)[-1], full=path)


@status_formatter("bash")
def _summarize_bash(tool_input: dict[str, Any]) -> ToolSummary:
    command = _str_field(tool_input, "command")
    return ToolSummary(short=truncate(command, 50), full=command)


@status_formatter("glob")
def _summarize_glob(tool_input: dict[str, Any]) -> ToolSummary:
    pattern = _str_field(tool_input, "pattern")
    return ToolSummary(short=truncate(pattern, 40), full=pattern)


@status_formatter("grep")
def _summarize_grep(tool_input: dict[str, Any]) -> ToolSummary:
    pattern = _str_field(tool_input, "pattern")
    if not pattern:
        return ToolSummary()
    return ToolSummary(short=f'"{truncate(pattern, 30)}"', full=f'"{pattern}"')


@status_formatter("web_search")
def _summarize_web_search(tool_input: dict[str, Any]) -> ToolSummary:
    query = _str_field(tool_input, "query")
    if not query:
        return ToolSummary()
    return ToolSummary(short=f'"{truncate(query, 40)}"', full=f'"{query}"')


@status_formatter("web_fetch")
def _summarize_web_fetch(tool_input: dict[str, Any]) -> ToolSummary:
    url = _str_field(tool_input, "url")
    if not url:
        return ToolSummary()
    try:
        host = urlparse(url).hostname
    except ValueError:
        host = None
    return ToolSummary(short=host or truncate(url, 40), full=url)
