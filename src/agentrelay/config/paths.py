"""Config file locations.

- User: $XDG_CONFIG_HOME/agentrelay/, ~/.config/agentrelay/ or ~/.agentrelay/
- Project: <working_dir>/.agentrelay/
"""

from __future__ import annotations

import os
from pathlib import Path

CONFIG_FILENAME = "config.yaml"
APP_NAME = "agentrelay"
SHORT_NAME = ".agentrelay"


def get_user_config_path() -> Path:
    """Get user-level config path. The file may not exist."""
    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        return Path(xdg_config) / APP_NAME / CONFIG_FILENAME

    home = Path.home()
    xdg_default = home / ".config"
    if xdg_default.exists():
        return xdg_default / APP_NAME / CONFIG_FILENAME

    return home / SHORT_NAME / CONFIG_FILENAME


def get_project_config_path(working_dir: str) -> Path:
    """Get project-level config path (may not exist)."""
    return Path(working_dir) / SHORT_NAME / CONFIG_FILENAME


def get_config_paths(working_dir: str | None = None) -> list[Path]:
    """All config paths, lowest priority first."""
    paths = [get_user_config_path()]
    if working_dir:
        paths.append(get_project_config_path(working_dir))
    return paths


def expand_home(raw: str) -> str:
    """Expand a leading ~ or $HOME and strip wrapping quotes."""
    value = raw.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        value = value[1:-1]
    home = str(Path.home())
    if value == "~" or value.startswith("~/"):
        return home + value[1:]
    if value == "$HOME" or value.startswith("$HOME/"):
        return home + value[len("$HOME"):]
    return value


def resolve_from(base: str, raw: str) -> str:
    """Resolve a user-supplied path relative to base, expanding ~."""
    expanded = expand_home(raw)
    path = Path(expanded)
    if not path.is_absolute():
        path = Path(base) / path
    return os.path.normpath(str(path))
