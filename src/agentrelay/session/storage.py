"""Saved session history.

The history file is a YAML document:

    sessions:
      - session_id: 6f1c...
        saved_at: 2026-01-17T10:30:00+01:00
        working_dir: /home/me/project
        title: Refactor the parser
        assistant: codex
        model: gpt-5.3-codex
        reasoning_effort: high

Entries are most-recent-first, unique by session_id and capped at
max_entries. Writes are atomic (temp file + rename).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml

from agentrelay.errors import PersistFailed
from agentrelay.logging import get_logger

log = get_logger("storage")

MAX_SESSIONS = 5
DEFAULT_TITLE = "Untitled session"


@dataclass
class SavedSession:
    """One resumable backend conversation."""

    session_id: str
    saved_at: datetime
    working_dir: str | None
    title: str
    assistant: str
    model: str
    reasoning_effort: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "session_id": self.session_id,
            "saved_at": self.saved_at.isoformat(),
            "working_dir": self.working_dir,
            "title": self.title,
            "assistant": self.assistant,
            "model": self.model,
        }
        if self.reasoning_effort:
            data["reasoning_effort"] = self.reasoning_effort
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SavedSession:
        saved_at = data.get("saved_at")
        if isinstance(saved_at, str):
            saved_at = datetime.fromisoformat(saved_at)
        elif not isinstance(saved_at, datetime):
            saved_at = datetime.fromtimestamp(0)
        return cls(
            session_id=str(data["session_id"]),
            saved_at=saved_at,
            working_dir=data.get("working_dir") or None,
            title=data.get("title") or DEFAULT_TITLE,
            assistant=data.get("assistant") or "claude",
            model=data.get("model") or "",
            # Older files stored the Codex effort under its own key
            reasoning_effort=data.get("reasoning_effort") or data.get("codex_reasoning_effort"),
        )

    def in_scope(self, working_dir: str) -> bool:
        """Entries without a directory are resumable from anywhere."""
        return not self.working_dir or self.working_dir == working_dir


class SessionHistoryStore:
    """Bounded, deduplicated history of saved sessions backed by one file."""

    def __init__(self, path: str | Path, max_entries: int = MAX_SESSIONS) -> None:
        self._path = Path(path)
        self._max_entries = max_entries

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> list[SavedSession]:
        """Load the history, returning an empty list if missing or invalid."""
        if not self._path.exists():
            return []

        try:
            with open(self._path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            log.warning("Failed to read session history %s: %s", self._path, e)
            return []

        entries = data.get("sessions", []) if isinstance(data, dict) else []
        sessions: list[SavedSession] = []
        for entry in entries:
            if not isinstance(entry, dict) or not entry.get("session_id"):
                continue
            try:
                sessions.append(SavedSession.from_dict(entry))
            except (KeyError, ValueError, TypeError) as e:
                log.debug("Skipping malformed session entry: %s", e)
        return sessions

    def save(self, sessions: list[SavedSession]) -> Path:
        """Write the history atomically.

        Raises:
            PersistFailed: If the file cannot be written.
        """
        temp_path = self._path.with_name(self._path.name + ".tmp")
        data = {"sessions": [s.to_dict() for s in sessions[: self._max_entries]]}
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                yaml.safe_dump(data, f, default_flow_style=False, allow_unicode=True, sort_keys=False)
            os.replace(temp_path, self._path)
        except OSError as e:
            if temp_path.exists():
                temp_path.unlink()
            raise PersistFailed(str(self._path), str(e)) from e
        return self._path

    def upsert(self, entry: SavedSession) -> list[SavedSession]:
        """Insert or update an entry and write the history.

        An existing entry with the same id is replaced in place (keeping its
        position); a new entry goes to the front. The list is then truncated.
        """
        sessions = self.load()
        for i, existing in enumerate(sessions):
            if existing.session_id == entry.session_id:
                sessions[i] = entry
                break
        else:
            sessions.insert(0, entry)

        sessions = sessions[: self._max_entries]
        self.save(sessions)
        log.debug("Session %s saved to %s", entry.session_id[:8], self._path)
        return sessions

    def find(self, session_id: str) -> SavedSession | None:
        for entry in self.load():
            if entry.session_id == session_id:
                return entry
        return None

    def list_for(self, working_dir: str) -> list[SavedSession]:
        """Entries resumable from working_dir, most recent first."""
        return [s for s in self.load() if s.in_scope(working_dir)]
