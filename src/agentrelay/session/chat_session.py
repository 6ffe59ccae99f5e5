"""ChatSession: the conversation state machine for one chat.

Owns the SessionState, the interrupt controller and one turn runner per
backend. All user commands (model switch, reset, resume) and all turns for
the chat go through here.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import TYPE_CHECKING

from agentrelay.errors import ModelSelectionError, PersistFailed, SessionNotFound, SessionWrongScope, TurnCancelled
from agentrelay.logging import get_logger
from agentrelay.safety import SafetyPolicy
from agentrelay.session.interrupt import InterruptController, StopResult, TurnPhase
from agentrelay.session.models import ModelSelection, model_display, parse_selection
from agentrelay.session.state import AssistantKind, SessionState
from agentrelay.session.storage import DEFAULT_TITLE, SavedSession, SessionHistoryStore
from agentrelay.turns.ask_user import AskUserStore
from agentrelay.turns.claude import ClaudeTurnRunner, QueryFn
from agentrelay.turns.codex import CodexTurnRunner

if TYPE_CHECKING:
    from agentrelay.backends.codex_exec import CodexClient
    from agentrelay.config.schema import RelayConfig
    from agentrelay.turns.events import StatusCallback
    from agentrelay.turns.runner import AskUserPresenter, TurnRunner

log = get_logger("session")

TITLE_MAX = 50


def title_from_message(message: str) -> str:
    first_line = message.strip().splitlines()[0] if message.strip() else ""
    if len(first_line) > TITLE_MAX:
        return first_line[: TITLE_MAX - 3] + "..."
    return first_line or DEFAULT_TITLE


class ChatSession:
    """One chat's conversation with whichever backend is active."""

    def __init__(
        self,
        config: RelayConfig,
        chat_id: str | None = None,
        history: SessionHistoryStore | None = None,
        policy: SafetyPolicy | None = None,
        ask_user: AskUserStore | None = None,
        query_fn: QueryFn | None = None,
        codex_client: CodexClient | None = None,
    ) -> None:
        self._config = config
        self.chat_id = chat_id
        self._history = history or SessionHistoryStore(
            config.paths.session_file, config.session.max_history
        )

        assistant = AssistantKind(config.assistant)
        model, effort = self._defaults_for(assistant)
        self.state = SessionState(assistant=assistant, model_id=model, reasoning_effort=effort)
        self.interrupt = InterruptController(self.state)

        policy = policy or SafetyPolicy.from_config(config)
        ask_user = ask_user or AskUserStore(config.ask_user)
        common = (self.state, self.interrupt, config, policy, self.persist, ask_user)
        self._runners: dict[AssistantKind, TurnRunner] = {
            AssistantKind.CLAUDE: ClaudeTurnRunner(*common, query_fn=query_fn),
            AssistantKind.CODEX: CodexTurnRunner(*common, client=codex_client),
        }

    # -- Projections ---------------------------------------------------------

    @property
    def working_dir(self) -> str:
        return self._config.paths.working_dir

    @property
    def history(self) -> SessionHistoryStore:
        return self._history

    @property
    def phase(self) -> TurnPhase:
        return self.interrupt.phase

    @property
    def model_display(self) -> str:
        return model_display(self.state.assistant, self.state.model_id, self.state.reasoning_effort)

    @property
    def model_debug(self) -> str:
        if self.state.assistant is AssistantKind.CODEX:
            return f"{self.state.model_id} ({self.state.reasoning_effort})"
        return self.state.model_id

    def _defaults_for(self, assistant: AssistantKind) -> tuple[str, str]:
        if assistant is AssistantKind.CODEX:
            return self._config.codex.model, self._config.codex.reasoning_effort
        return self._config.claude.model, self._config.claude.reasoning_effort

    # -- Model selection -----------------------------------------------------

    def _resolve(self, selection: ModelSelection) -> tuple[str, str]:
        default_model, default_effort = self._defaults_for(selection.assistant)
        model = selection.model or default_model
        if selection.assistant is AssistantKind.CLAUDE:
            return model, default_effort

        if selection.effort:
            return model, selection.effort
        if selection.model and self.state.assistant is AssistantKind.CODEX:
            # Literal model id: keep the effort already in use
            return model, self.state.reasoning_effort
        return model, default_effort

    def set_model(self, raw: str) -> tuple[bool, str]:
        """Switch assistant/model/effort from a free-text selection.

        Any change drops the backend session and every turn field; an
        unchanged selection and a parse failure leave the state untouched.
        """
        try:
            selection = parse_selection(raw)
        except ModelSelectionError as e:
            return False, str(e)

        model, effort = self._resolve(selection)
        state = self.state
        if (selection.assistant, model, effort) == (state.assistant, state.model_id, state.reasoning_effort):
            return True, f"Model unchanged: {self.model_display} ({state.assistant.value.upper()})"

        state.reset_turn_fields()
        state.assistant = selection.assistant
        state.model_id = model
        state.reasoning_effort = effort
        log.info("Model switched to %s", self.model_debug)
        return (
            True,
            f"Model switched to {self.model_display} ({state.assistant.value.upper()}). "
            "Started a fresh session.",
        )

    # -- Persistence and resume ---------------------------------------------

    def persist(self) -> SavedSession | None:
        """Save the current backend session to the history.

        Write failures are logged; the in-memory identity stays correct.
        """
        state = self.state
        if not state.backend_session_id:
            return None

        entry = SavedSession(
            session_id=state.backend_session_id,
            saved_at=datetime.now().astimezone(),
            working_dir=self.working_dir,
            title=state.conversation_title or DEFAULT_TITLE,
            assistant=state.assistant.value,
            model=state.model_id,
            reasoning_effort=state.reasoning_effort,
        )
        try:
            self._history.upsert(entry)
        except PersistFailed as e:
            log.warning("%s", e)
            return None
        log.info("Session saved to %s", self._history.path)
        return entry

    def list_saved(self) -> list[SavedSession]:
        """Saved sessions resumable from this working directory."""
        return self._history.list_for(self.working_dir)

    def resume(self, session_id: str) -> SavedSession:
        """Restore a saved session.

        Raises:
            SessionNotFound: No entry with that id.
            SessionWrongScope: The entry belongs to another working directory.
        """
        entry = self._history.find(session_id)
        if entry is None:
            raise SessionNotFound(session_id)
        if not entry.in_scope(self.working_dir):
            raise SessionWrongScope(session_id, entry.working_dir or "")

        try:
            assistant = AssistantKind(entry.assistant)
        except ValueError:
            assistant = self.state.assistant
        default_model, default_effort = self._defaults_for(assistant)

        state = self.state
        state.reset_turn_fields()
        state.assistant = assistant
        state.model_id = entry.model or default_model
        state.reasoning_effort = entry.reasoning_effort or default_effort
        state.backend_session_id = entry.session_id
        state.conversation_title = entry.title
        state.last_activity = datetime.now()
        log.info('Resumed session %s... - "%s"', entry.session_id[:8], entry.title)
        return entry

    def resume_last(self) -> SavedSession | None:
        """Resume the most recent session for this directory, if any."""
        sessions = self.list_saved()
        if not sessions:
            return None
        return self.resume(sessions[0].session_id)

    def reset(self) -> None:
        """Forget the backend session; the next message starts fresh."""
        self.state.reset_turn_fields()
        log.info("Session cleared")

    # -- Turns and interrupts -----------------------------------------------

    @contextmanager
    def start_processing(self) -> Iterator[None]:
        """Wrap the work between accepting a message and running its turn."""
        with self.interrupt.processing():
            yield

    def request_stop(self) -> StopResult:
        return self.interrupt.request_stop()

    def mark_interrupted_by_new_message(self) -> None:
        self.interrupt.mark_interrupted_by_new_message()

    def consume_interrupt_flag(self) -> bool:
        return self.interrupt.consume_interrupt_flag()

    def clear_stop_requested(self) -> None:
        self.interrupt.clear_stop_requested()

    async def send_message(
        self,
        message: str,
        callback: StatusCallback,
        on_ask_user: AskUserPresenter | None = None,
    ) -> str | None:
        """Run one turn on the active backend.

        Returns the final text, or None when the turn was cancelled before it
        started.

        Raises:
            UnsafeAction: The safety policy rejected a tool invocation.
            BackendTurnFailed: The backend failed the turn.
        """
        state = self.state
        state.last_message = message
        if state.conversation_title is None and not state.is_active:
            state.conversation_title = title_from_message(message)

        runner = self._runners[state.assistant]
        try:
            return await runner.run_turn(message, callback, chat_id=self.chat_id, on_ask_user=on_ask_user)
        except TurnCancelled:
            return None
