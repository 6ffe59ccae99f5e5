"""Safety policy for tool invocations made by the wrapped agents.

Pure decisions, no side effects:
- check_command_safety(): blocked substrings and rm target validation
- is_path_allowed(): containment in the allowlist or a temp path
- is_read_exempt(): reads from temp/runtime scratch or credentials dirs

The turn runners call these before surfacing a tool event and abort the turn
when a check fails.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from agentrelay.config.paths import expand_home

if TYPE_CHECKING:
    from agentrelay.config.schema import RelayConfig

_SEGMENT_SPLIT = re.compile(r"&&|\|\||;|\|")
_RM_WORD = re.compile(r"\brm\b", re.IGNORECASE)
_RM_TOKEN = re.compile(r"^(?:\S*/)?rm$", re.IGNORECASE)
_SHELL_TOKEN = re.compile(r"\"[^\"]*\"|'[^']*'|\S+")


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


@dataclass
class SafetyPolicy:
    """Command and path rules for one working directory.

    Attributes:
        working_dir: Base for relative paths.
        allowed_paths: Absolute directories the agents may touch.
        temp_paths: Prefixes that are always allowed (runtime dir, /tmp).
        credentials_dirs: Directories readable even when outside the allowlist.
        blocked_patterns: Case-insensitive substrings that block a command.
    """

    working_dir: str
    allowed_paths: list[str] = field(default_factory=list)
    temp_paths: list[str] = field(default_factory=list)
    credentials_dirs: list[str] = field(default_factory=list)
    blocked_patterns: list[str] = field(default_factory=list)

    @classmethod
    def from_config(cls, config: RelayConfig) -> SafetyPolicy:
        """Build a policy from a finalized RelayConfig."""
        return cls(
            working_dir=config.paths.working_dir,
            allowed_paths=list(config.paths.allowed_paths),
            temp_paths=list(config.safety.temp_paths),
            credentials_dirs=list(config.safety.credentials_dirs),
            blocked_patterns=list(config.safety.blocked_patterns),
        )

    def _resolve(self, path: str) -> str:
        expanded = os.path.normpath(expand_home(path))
        candidate = Path(expanded)
        if not candidate.is_absolute():
            candidate = Path(self.working_dir) / candidate
        try:
            return str(candidate.resolve(strict=True))
        except (OSError, RuntimeError):
            # Path may not exist yet
            return os.path.normpath(os.path.abspath(candidate))

    def _within(self, resolved: str, directory: str) -> bool:
        """Containment of a resolved path in a directory, as written or resolved."""
        written = os.path.normpath(os.path.abspath(expand_home(directory)))
        for base in {written, self._resolve(directory)}:
            if resolved == base or resolved.startswith(base.rstrip("/") + "/"):
                return True
        return False

    def is_path_allowed(self, path: str) -> bool:
        """Check whether a path is inside the allowlist or a temp path.

        Symlinks are resolved when the path exists, so a link inside an
        allowed directory pointing outside of it is rejected.
        """
        if not path or not path.strip():
            return False
        try:
            resolved = self._resolve(path)
        except (OSError, ValueError):
            return False

        if any(self._within(resolved, temp) for temp in self.temp_paths):
            return True

        for allowed in self.allowed_paths:
            allowed_resolved = os.path.normpath(os.path.abspath(allowed))
            if resolved == allowed_resolved or resolved.startswith(allowed_resolved + "/"):
                return True
        return False

    def is_read_exempt(self, path: str) -> bool:
        """Reads from scratch or credentials directories skip the allowlist.

        The path is resolved first, so ".." segments and symlinks cannot
        leave the exempt directory.
        """
        if not path or not path.strip():
            return False
        try:
            resolved = self._resolve(path)
        except (OSError, ValueError):
            return False

        return any(
            self._within(resolved, directory)
            for directory in [*self.temp_paths, *self.credentials_dirs]
        )

    def check_command_safety(self, command: str) -> tuple[bool, str]:
        """Decide whether a shell command may run.

        Returns:
            (safe, reason); reason is empty when safe.
        """
        lowered = command.lower()
        for pattern in self.blocked_patterns:
            if pattern.lower() in lowered:
                return False, f"Blocked pattern: {pattern}"

        if not _RM_WORD.search(command):
            return True, ""

        # Validate every rm target, segment by segment, so operators like
        # "&&" are not mistaken for arguments.
        for segment in _SEGMENT_SPLIT.split(command):
            tokens = _SHELL_TOKEN.findall(segment)
            rm_index = next(
                (i for i, tok in enumerate(tokens) if _RM_TOKEN.match(_strip_quotes(tok))),
                -1,
            )
            if rm_index == -1:
                continue
            for raw in tokens[rm_index + 1:]:
                arg = _strip_quotes(raw)
                if not arg or arg.startswith("-"):
                    continue
                if not self.is_path_allowed(arg):
                    return False, f"rm target outside allowed paths: {raw}"
        return True, ""

    def check_file_access(self, tool: str, path: str) -> tuple[bool, str]:
        """Decide whether a read/write/edit tool may touch a path."""
        if not path:
            return True, ""
        if tool == "read" and self.is_read_exempt(path):
            return True, ""
        if self.is_path_allowed(path):
            return True, ""
        return False, f"Access denied: {path}"

