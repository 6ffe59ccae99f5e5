"""Session layer: conversation state, model selection, history, interrupts.

ChatSession and SessionManager depend on the turn runners; import them from
agentrelay.session.chat_session and agentrelay.session.session_manager.
"""

from agentrelay.session.interrupt import InterruptController, TurnPhase
from agentrelay.session.models import ModelSelection, model_display, parse_selection
from agentrelay.session.state import AssistantKind, SessionState, TokenUsage
from agentrelay.session.storage import SavedSession, SessionHistoryStore

__all__ = [
    "AssistantKind",
    "InterruptController",
    "ModelSelection",
    "SavedSession",
    "SessionHistoryStore",
    "SessionState",
    "TokenUsage",
    "TurnPhase",
    "model_display",
    "parse_selection",
]
