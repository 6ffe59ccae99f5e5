"""Event contracts for the turn layer.

Two vocabularies live here:
- StatusEvent: what the transport sees (thinking, tool, text, segment_end, done)
- BackendEvent: what a backend adapter yields after translating its native
  stream, consumed by TurnRunner
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, Union

from agentrelay.session.state import TokenUsage

# -----------------------------------------------------------------------------
# Transport contract
# -----------------------------------------------------------------------------


class StatusKind(Enum):
    """Types of status updates emitted to the transport during a turn."""

    THINKING = "thinking"
    TOOL = "tool"
    TEXT = "text"
    SEGMENT_END = "segment_end"
    DONE = "done"


@dataclass(frozen=True, slots=True)
class StatusEvent:
    """One status update.

    segment_id is set for TEXT and SEGMENT_END only. Ids start at 0 per turn
    and advance when a tool interrupts accumulated text.
    """

    kind: StatusKind
    content: str = ""
    segment_id: int | None = None


class StatusCallback(Protocol):
    """async (kind, content, segment_id) -> None"""

    async def __call__(
        self, kind: StatusKind, content: str, segment_id: int | None = None
    ) -> None: ...


class StatusRecorder:
    """StatusCallback that keeps every event, for tests and replay."""

    def __init__(self) -> None:
        self.events: list[StatusEvent] = []

    async def __call__(
        self, kind: StatusKind, content: str, segment_id: int | None = None
    ) -> None:
        self.events.append(StatusEvent(kind, content, segment_id))

    def kinds(self) -> list[StatusKind]:
        return [e.kind for e in self.events]

    def of(self, kind: StatusKind) -> list[StatusEvent]:
        return [e for e in self.events if e.kind is kind]


# -----------------------------------------------------------------------------
# Backend vocabulary
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class SessionAnnounced:
    """The backend told us its session/thread id."""

    session_id: str


@dataclass(slots=True)
class ThinkingContent:
    text: str


@dataclass(slots=True)
class ToolInvocation:
    """A tool or command the agent is about to run.

    Attributes:
        name: Backend tool name ("Bash", "Read", "mcp__ask-user__ask", ...)
        input: Tool arguments as reported by the backend
    """

    name: str
    input: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class TextContent:
    text: str


@dataclass(slots=True)
class TurnCompleted:
    session_id: str | None = None
    usage: TokenUsage | None = None


@dataclass(slots=True)
class TurnFailed:
    message: str


BackendEvent = Union[
    SessionAnnounced,
    ThinkingContent,
    ToolInvocation,
    TextContent,
    TurnCompleted,
    TurnFailed,
]
