"""SessionManager: one ChatSession per chat id.

Sessions share the config, the saved-session history and the safety policy;
each has its own SessionState, so turns in different chats never touch each
other's flags.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from agentrelay.logging import get_logger
from agentrelay.safety import SafetyPolicy
from agentrelay.session.chat_session import ChatSession
from agentrelay.session.storage import SessionHistoryStore
from agentrelay.turns.ask_user import AskUserStore

if TYPE_CHECKING:
    from agentrelay.config.schema import RelayConfig

log = get_logger("session")


class SessionManager:
    """Registry of chat sessions keyed by chat id."""

    def __init__(self, config: RelayConfig, **session_kwargs: Any) -> None:
        """Initialize the session manager.

        Args:
            config: Finalized relay configuration.
            **session_kwargs: Passed to every ChatSession (query_fn,
                codex_client, ...).
        """
        self._config = config
        self._history = SessionHistoryStore(
            config.paths.session_file, config.session.max_history
        )
        self._policy = SafetyPolicy.from_config(config)
        self._ask_user = AskUserStore(config.ask_user)
        self._session_kwargs = session_kwargs
        self._sessions: dict[str, ChatSession] = {}

    def get_or_create(self, chat_id: str) -> ChatSession:
        session = self._sessions.get(chat_id)
        if session is None:
            session = ChatSession(
                self._config,
                chat_id=chat_id,
                history=self._history,
                policy=self._policy,
                ask_user=self._ask_user,
                **self._session_kwargs,
            )
            self._sessions[chat_id] = session
            log.debug("Created session for chat %s", chat_id)
        return session

    def get(self, chat_id: str) -> ChatSession | None:
        return self._sessions.get(chat_id)

    def list_chats(self) -> list[str]:
        return list(self._sessions)

    def busy_chats(self) -> list[str]:
        return [cid for cid, s in self._sessions.items() if s.state.is_busy]

    def remove(self, chat_id: str) -> None:
        """Drop a chat's session; a running turn keeps its own reference."""
        if self._sessions.pop(chat_id, None) is not None:
            log.debug("Removed session for chat %s", chat_id)
