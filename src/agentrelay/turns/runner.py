"""Shared turn algorithm for both backends.

A TurnRunner drives one backend's event stream for a single turn and emits
the unified status contract:

1. Abort with TurnCancelled if a stop arrived before the turn started.
2. Prepend a date/time preamble on fresh sessions.
3. Mark running; set up hard abort (backend A) or cooperative stop (backend B).
4. Iterate backend events, polling the stop flag once per event.
5. Check tool invocations against the SafetyPolicy before surfacing them.
6. Break early once an ask-user question was handed to the user.
7. Flush the open segment, emit done, clear lifecycle fields.
8. Swallow cancellation-shaped errors once the turn is logically over.

Subclasses only translate their native stream into BackendEvents.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import datetime
from typing import ClassVar

from agentrelay.config.schema import RelayConfig
from agentrelay.errors import BackendTurnFailed, TurnCancelled, UnsafeAction
from agentrelay.logging import get_logger
from agentrelay.safety import SafetyPolicy
from agentrelay.session.interrupt import InterruptController
from agentrelay.session.state import AssistantKind, SessionState
from agentrelay.turns.ask_user import AskUserRequest, AskUserStore
from agentrelay.turns.events import (
    BackendEvent,
    SessionAnnounced,
    StatusCallback,
    StatusKind,
    TextContent,
    ThinkingContent,
    ToolInvocation,
    TurnCompleted,
    TurnFailed,
)
from agentrelay.turns.normalizer import StreamNormalizer
from agentrelay.turns.tools import FILE_TOOLS, SHELL_TOOLS, format_tool_status, is_ask_user_tool

log = get_logger("turns")

AWAITING_SELECTION = "[Waiting for user selection]"

AskUserPresenter = Callable[[AskUserRequest], Awaitable[None]]


def date_preamble(now: datetime | None = None) -> str:
    """One-time temporal grounding for a fresh session.

    Example: "[Current date/time: Saturday, January 17, 2026 at 10:30 AM CET]"
    """
    now = (now or datetime.now()).astimezone()
    stamp = f"{now:%A}, {now:%B} {now.day}, {now.year} at {now:%I:%M %p %Z}"
    return f"[Current date/time: {stamp}]\n\n"


def is_cancellation(error: BaseException) -> bool:
    """Whether an error is teardown noise from a stop or abort.

    Typed signals are checked first; errors raised by third-party code fall
    back to their text.
    """
    if isinstance(error, TurnCancelled):
        return True
    if isinstance(error, UnsafeAction):
        return False
    text = str(error).lower()
    return "cancel" in text or "abort" in text


async def _pull(stream: AsyncIterator[BackendEvent]) -> BackendEvent | None:
    return await anext(stream, None)


class TurnRunner(ABC):
    """Runs turns against one backend on behalf of a ChatSession."""

    assistant: ClassVar[AssistantKind]
    hard_abort: ClassVar[bool] = False

    def __init__(
        self,
        state: SessionState,
        interrupt: InterruptController,
        config: RelayConfig,
        policy: SafetyPolicy,
        persist: Callable[[], object],
        ask_user: AskUserStore | None = None,
    ) -> None:
        self.state = state
        self.interrupt = interrupt
        self.config = config
        self.policy = policy
        self._persist = persist
        self.ask_user = ask_user

    @abstractmethod
    def events(self, prompt: str, message: str) -> AsyncIterator[BackendEvent]:
        """Open (or resume) the backend conversation and translate its stream.

        Args:
            prompt: Text to send, preamble included.
            message: The user's original message.
        """

    def describe_start(self, message: str) -> str:
        """Log line for turn start; backends add their own details."""
        if self.state.backend_session_id:
            return f"RESUMING {self.assistant.label} session {self.state.backend_session_id[:8]}..."
        return f"STARTING new {self.assistant.label} session"

    @property
    def empty_response(self) -> str:
        return f"No response from {self.assistant.label}."

    async def run_turn(
        self,
        message: str,
        callback: StatusCallback,
        chat_id: str | None = None,
        on_ask_user: AskUserPresenter | None = None,
    ) -> str:
        """Run one turn and return its final text.

        Raises:
            TurnCancelled: A stop was requested before the turn started.
            UnsafeAction: The safety policy rejected a tool invocation.
            BackendTurnFailed: The backend failed the turn.
        """
        state = self.state
        is_new = not state.is_active
        prompt = date_preamble() + message if is_new else message
        log.info(self.describe_start(message))

        try:
            abort = self.interrupt.begin_turn(self.hard_abort)
        except TurnCancelled:
            await callback(StatusKind.DONE, "")
            raise

        state.turn_started = datetime.now()
        state.current_tool = None

        normalizer = StreamNormalizer(callback, self.config.streaming)
        completed = False
        ask_user_triggered = False
        stream = self.events(prompt, message)

        try:
            while True:
                if self.interrupt.stop_requested:
                    log.info("%s turn stopped by user", self.assistant.label)
                    break

                event = await self._next_event(stream, abort)
                if event is None:
                    break
                if self.interrupt.stop_requested:
                    log.info("%s turn stopped by user", self.assistant.label)
                    break
                state.last_activity = datetime.now()

                if isinstance(event, SessionAnnounced):
                    if not state.backend_session_id:
                        state.backend_session_id = event.session_id
                        log.info("GOT session_id: %s...", event.session_id[:8])
                        self._persist()

                elif isinstance(event, ThinkingContent):
                    if event.text:
                        log.debug("THINKING BLOCK: %s...", event.text[:100])
                        await callback(StatusKind.THINKING, event.text)

                elif isinstance(event, ToolInvocation):
                    await self._check_tool(event, callback)
                    await normalizer.end_segment()

                    label = format_tool_status(event.name, event.input)
                    state.current_tool = label
                    state.last_tool = label
                    log.info("Tool: %s", label)

                    if not is_ask_user_tool(event.name):
                        await callback(StatusKind.TOOL, label)
                    elif await self._hand_off_ask_user(chat_id, on_ask_user):
                        ask_user_triggered = True
                        break

                elif isinstance(event, TextContent):
                    await normalizer.add_text(event.text)

                elif isinstance(event, TurnFailed):
                    raise BackendTurnFailed(event.message, self.assistant.label)

                elif isinstance(event, TurnCompleted):
                    completed = True
                    log.info("Response complete")
                    if event.usage:
                        state.last_usage = event.usage
                        log.info(
                            "Usage: in=%d out=%d cache_read=%d cache_create=%d",
                            event.usage.input_tokens,
                            event.usage.output_tokens,
                            event.usage.cache_read,
                            event.usage.cache_create,
                        )
                    if event.session_id:
                        state.backend_session_id = event.session_id
                    if state.backend_session_id:
                        self._persist()
                    break

        except asyncio.CancelledError:
            # The task driving the turn was cancelled; leave the running
            # phase and close the stream before propagating.
            log.info("%s turn task cancelled", self.assistant.label)
            await self._finish(stream)
            state.last_activity = datetime.now()
            await callback(StatusKind.DONE, "")
            raise

        except Exception as e:
            if is_cancellation(e) and (completed or ask_user_triggered or state.stop_requested):
                log.warning("Suppressed post-completion error: %s", e)
            else:
                log.error("Error in %s query: %s", self.assistant.label, e)
                state.record_error(e)
                await self._finish(stream)
                await callback(StatusKind.DONE, "")
                if isinstance(e, (UnsafeAction, BackendTurnFailed)):
                    raise
                raise BackendTurnFailed(str(e), self.assistant.label) from e

        await self._finish(stream)
        state.last_activity = datetime.now()
        state.clear_error()

        await normalizer.end_segment()
        await callback(StatusKind.DONE, "")

        if ask_user_triggered:
            return AWAITING_SELECTION
        return normalizer.final_text or self.empty_response

    async def _next_event(
        self, stream: AsyncIterator[BackendEvent], abort: asyncio.Event | None
    ) -> BackendEvent | None:
        """Next backend event, or None at end of stream or on hard abort."""
        if abort is None:
            return await anext(stream, None)
        if abort.is_set():
            return None

        next_task = asyncio.ensure_future(_pull(stream))
        abort_task = asyncio.ensure_future(abort.wait())
        try:
            done, _ = await asyncio.wait(
                {next_task, abort_task}, return_when=asyncio.FIRST_COMPLETED
            )
            if next_task in done:
                return next_task.result()
            log.info("Query aborted by user")
            return None
        finally:
            # Neither task may outlive this call: a pending pull would still
            # own the stream when it gets closed.
            pending = [task for task in (next_task, abort_task) if not task.done()]
            for task in pending:
                task.cancel()
            for outcome in await asyncio.gather(*pending, return_exceptions=True):
                if isinstance(outcome, Exception):
                    log.debug("Suppressed error from aborted %s stream: %s", self.assistant.label, outcome)

    async def _check_tool(self, event: ToolInvocation, callback: StatusCallback) -> None:
        """Fail closed on unsafe shell commands and file access."""
        if event.name in SHELL_TOOLS:
            command = str(event.input.get("command") or "")
            safe, reason = self.policy.check_command_safety(command)
            if not safe:
                log.warning("BLOCKED: %s", reason)
                await callback(StatusKind.TOOL, f"BLOCKED: {reason}")
                raise UnsafeAction(reason, event.name)

        elif event.name in FILE_TOOLS:
            path = str(event.input.get("file_path") or "")
            allowed, reason = self.policy.check_file_access(FILE_TOOLS[event.name], path)
            if not allowed:
                log.warning("BLOCKED: File access outside allowed paths: %s", path)
                await callback(StatusKind.TOOL, reason)
                raise UnsafeAction(f"File access blocked: {path}", event.name)

    async def _hand_off_ask_user(
        self, chat_id: str | None, on_ask_user: AskUserPresenter | None
    ) -> bool:
        if chat_id is None or self.ask_user is None:
            return False
        requests = await self.ask_user.wait_for_pending(chat_id)
        if not requests:
            return False
        if on_ask_user is not None:
            for request in requests:
                await on_ask_user(request)
        return True

    async def _finish(self, stream: AsyncIterator[BackendEvent]) -> None:
        """Close the backend stream and leave the running phase."""
        self.interrupt.end_turn()
        self.state.turn_started = None
        self.state.current_tool = None

        aclose = getattr(stream, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception as e:
            log.debug("Suppressed error while closing %s stream: %s", self.assistant.label, e)
