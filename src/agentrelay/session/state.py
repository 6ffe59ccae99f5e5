"""Mutable state of one chat's conversation with a backend."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class AssistantKind(Enum):
    """Which backend is active."""

    CLAUDE = "claude"
    CODEX = "codex"

    @property
    def label(self) -> str:
        return "Codex" if self is AssistantKind.CODEX else "Claude"


@dataclass(slots=True)
class TokenUsage:
    """Token counts reported by the backend at turn completion."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_read: int = 0
    cache_create: int = 0

    @classmethod
    def from_mapping(cls, data: dict[str, Any] | None) -> TokenUsage | None:
        """Accept both SDK (cache_*_input_tokens) and Codex (cached_input_tokens) keys."""
        if not data:
            return None
        return cls(
            input_tokens=int(data.get("input_tokens") or 0),
            output_tokens=int(data.get("output_tokens") or 0),
            cache_read=int(
                data.get("cache_read_input_tokens") or data.get("cached_input_tokens") or 0
            ),
            cache_create=int(data.get("cache_creation_input_tokens") or 0),
        )


@dataclass(slots=True)
class ErrorRecord:
    """Last fatal error, truncated for status display."""

    message: str
    time: datetime


@dataclass
class SessionState:
    """Identity and lifecycle of the active conversation.

    backend_session_id is only meaningful for the current assistant kind and
    model; anything that changes either must clear it along with the turn
    and observability fields (see reset_turn_fields).
    """

    assistant: AssistantKind
    model_id: str
    reasoning_effort: str
    backend_session_id: str | None = None

    # Turn lifecycle
    is_running: bool = False
    is_processing: bool = False
    stop_requested: bool = False
    interrupted_by_new_message: bool = False

    # Observability, written by the turn runners
    last_activity: datetime | None = None
    turn_started: datetime | None = None
    current_tool: str | None = None
    last_tool: str | None = None
    last_error: ErrorRecord | None = None
    last_usage: TokenUsage | None = None
    conversation_title: str | None = None
    last_message: str | None = None

    @property
    def is_active(self) -> bool:
        return self.backend_session_id is not None

    @property
    def is_busy(self) -> bool:
        return self.is_running or self.is_processing

    def record_error(self, error: BaseException | str) -> None:
        self.last_error = ErrorRecord(message=str(error)[:100], time=datetime.now())

    def clear_error(self) -> None:
        self.last_error = None

    def reset_turn_fields(self) -> None:
        """Drop the backend session and everything observed about it."""
        self.backend_session_id = None
        self.is_running = False
        self.stop_requested = False
        self.interrupted_by_new_message = False
        self.last_activity = None
        self.turn_started = None
        self.current_tool = None
        self.last_tool = None
        self.last_error = None
        self.last_usage = None
        self.conversation_title = None
