"""agentrelay: relay chat messages to Claude Agent SDK or Codex agents."""

__version__ = "0.1.0"

# Public API
from agentrelay.config import RelayConfig, get_config, load_config
from agentrelay.errors import (
    BackendTurnFailed,
    PersistFailed,
    RelayError,
    ResumeFailed,
    TurnCancelled,
    UnsafeAction,
)
from agentrelay.safety import SafetyPolicy
from agentrelay.session import AssistantKind, SavedSession, SessionState
from agentrelay.session.chat_session import ChatSession
from agentrelay.session.session_manager import SessionManager
from agentrelay.turns import StatusEvent, StatusKind

__all__ = [
    # Entry points
    "ChatSession",
    "SessionManager",
    # Configuration
    "RelayConfig",
    "get_config",
    "load_config",
    # State and events
    "AssistantKind",
    "SavedSession",
    "SessionState",
    "StatusEvent",
    "StatusKind",
    # Safety
    "SafetyPolicy",
    # Errors
    "BackendTurnFailed",
    "PersistFailed",
    "RelayError",
    "ResumeFailed",
    "TurnCancelled",
    "UnsafeAction",
]
