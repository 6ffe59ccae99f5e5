"""Error taxonomy for the relay core.

Only UnsafeAction and BackendTurnFailed escape a turn; the rest are either
handled inside the runner (ResumeFailed, PersistFailed) or end the turn
quietly (TurnCancelled).
"""

from __future__ import annotations

from dataclasses import dataclass


class RelayError(Exception):
    """Base class for agentrelay errors."""


class TurnCancelled(RelayError):
    """A stop was requested before or during a turn."""

    def __init__(self, message: str = "Query cancelled") -> None:
        super().__init__(message)


@dataclass
class UnsafeAction(RelayError):
    """The safety policy rejected a tool invocation mid-stream.

    Fatal for the turn so the agent cannot silently retry the blocked
    action within the same turn.
    """

    reason: str
    tool: str = ""

    def __str__(self) -> str:
        return f"Unsafe action blocked: {self.reason}"


@dataclass
class BackendTurnFailed(RelayError):
    """The backend reported a failed turn or a stream error."""

    message: str
    assistant: str = ""

    def __str__(self) -> str:
        if self.assistant:
            return f"{self.assistant} turn failed: {self.message}"
        return self.message


@dataclass
class ResumeFailed(RelayError):
    """A stored backend session could not be reopened."""

    session_id: str
    reason: str

    def __str__(self) -> str:
        return f"Cannot resume {self.session_id}: {self.reason}"


@dataclass
class PersistFailed(RelayError):
    """The session history could not be written."""

    path: str
    reason: str

    def __str__(self) -> str:
        return f"Failed to save session history to {self.path}: {self.reason}"


@dataclass
class SessionNotFound(RelayError):
    """No saved session matches the requested id."""

    session_id: str

    def __str__(self) -> str:
        return f"Session not found: {self.session_id}"


@dataclass
class SessionWrongScope(RelayError):
    """The saved session belongs to a different working directory."""

    session_id: str
    working_dir: str

    def __str__(self) -> str:
        return f"Session belongs to a different directory: {self.working_dir}"


@dataclass
class ModelSelectionError(RelayError):
    """A model selection string could not be parsed."""

    message: str

    def __str__(self) -> str:
        return self.message
