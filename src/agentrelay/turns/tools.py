"""Human-readable tool labels and tool classification."""

from __future__ import annotations

import os
from typing import Any

ASK_USER_PREFIX = "mcp__ask-user"

SHELL_TOOLS = frozenset({"Bash"})
FILE_TOOLS = {"Read": "read", "Write": "write", "Edit": "edit", "MultiEdit": "edit"}

_MAX_DETAIL = 60


def is_ask_user_tool(name: str) -> bool:
    return name.startswith(ASK_USER_PREFIX)


def _shorten(text: str, limit: int = _MAX_DETAIL) -> str:
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def _short_path(path: str) -> str:
    if not path:
        return ""
    home = os.path.expanduser("~")
    if path.startswith(home + "/"):
        path = "~" + path[len(home):]
    return _shorten(path)


def format_tool_status(name: str, tool_input: dict[str, Any] | None = None) -> str:
    """Label shown while a tool runs, e.g. "▶️ git status" or "📖 Reading main.py"."""
    args = tool_input or {}

    if name in SHELL_TOOLS:
        description = args.get("description")
        if description:
            return f"▶️ {_shorten(str(description))}"
        return f"▶️ {_shorten(str(args.get('command', '')))}"

    if name == "Read":
        return f"📖 Reading {_short_path(str(args.get('file_path', '')))}"
    if name == "Write":
        return f"📝 Writing {_short_path(str(args.get('file_path', '')))}"
    if name in ("Edit", "MultiEdit"):
        return f"✏️ Editing {_short_path(str(args.get('file_path', '')))}"
    if name == "Glob":
        return f"🔍 Finding {_shorten(str(args.get('pattern', '')))}"
    if name == "Grep":
        return f"🔎 Searching {_shorten(str(args.get('pattern', '')))}"
    if name == "WebFetch":
        return f"🌐 Fetching {_shorten(str(args.get('url', '')))}"
    if name == "WebSearch":
        return f"🔍 Searching web: {_shorten(str(args.get('query', '')))}"
    if name == "Task":
        return f"🎯 Agent: {_shorten(str(args.get('description', 'task')))}"
    if name == "TodoWrite":
        return "📋 Updating todos"

    if name.startswith("mcp__"):
        # mcp__<server>__<tool>
        parts = name.split("__", 2)
        if len(parts) == 3:
            return f"🔧 {parts[1]}: {parts[2]}"
        return f"🔧 {name[5:]}"

    return f"🔧 {name}"
