"""Stop and interrupt coordination for a running turn.

Phases: IDLE -> PROCESSING -> RUNNING -> IDLE (or CANCELLED while a stop is
being honored). The flags live on SessionState so status commands can read
them; this controller is the only writer.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum
from typing import Literal

from agentrelay.errors import TurnCancelled
from agentrelay.logging import get_logger
from agentrelay.session.state import SessionState

log = get_logger("interrupt")

StopResult = Literal["stopped", "pending", False]


class TurnPhase(Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    RUNNING = "running"
    CANCELLED = "cancelled"


class InterruptController:
    """Shared stop flag plus an optional hard abort token.

    Backends with a hard abort get an asyncio.Event that the runner races
    against the next backend event; cooperative backends only see the flag,
    polled once per event.
    """

    def __init__(self, state: SessionState) -> None:
        self._state = state
        self._abort: asyncio.Event | None = None

    @property
    def phase(self) -> TurnPhase:
        if self._state.is_running:
            return TurnPhase.CANCELLED if self._state.stop_requested else TurnPhase.RUNNING
        if self._state.is_processing:
            return TurnPhase.PROCESSING
        return TurnPhase.IDLE

    @property
    def abort_event(self) -> asyncio.Event | None:
        return self._abort

    @property
    def stop_requested(self) -> bool:
        return self._state.stop_requested

    @contextmanager
    def processing(self) -> Iterator[None]:
        """Mark the window between accepting a message and starting the turn."""
        self._state.is_processing = True
        try:
            yield
        finally:
            self._state.is_processing = False

    def begin_turn(self, hard_abort: bool) -> asyncio.Event | None:
        """Enter RUNNING, or abort if a stop arrived while processing.

        Raises:
            TurnCancelled: A stop was requested before the turn started; the
                flag is cleared so the next message is not born cancelled.
        """
        if self._state.stop_requested:
            log.info("Query cancelled before starting (stop was requested during processing)")
            self._state.stop_requested = False
            raise TurnCancelled()

        self._abort = asyncio.Event() if hard_abort else None
        self._state.is_running = True
        return self._abort

    def end_turn(self) -> None:
        """Back to IDLE; a stop honored by this turn does not carry over."""
        self._state.is_running = False
        self._state.stop_requested = False
        self._abort = None

    def request_stop(self) -> StopResult:
        """Ask the current turn to stop.

        Returns:
            "stopped" if a running turn was signalled, "pending" if the turn
            has not started yet, False if nothing is in flight.
        """
        if self._state.is_running and self._abort is not None:
            self._state.stop_requested = True
            self._abort.set()
            log.info("Stop requested - aborting current query")
            return "stopped"

        if self._state.is_running:
            self._state.stop_requested = True
            log.info("Stop requested - will stop at the next backend event")
            return "stopped"

        if self._state.is_processing:
            self._state.stop_requested = True
            log.info("Stop requested - will cancel before query starts")
            return "pending"

        return False

    def clear_stop_requested(self) -> None:
        self._state.stop_requested = False

    def mark_interrupted_by_new_message(self) -> None:
        """Flag that the pending stop comes from a message superseding the turn."""
        self._state.interrupted_by_new_message = True

    def consume_interrupt_flag(self) -> bool:
        """Read and reset the interrupt flag.

        Also clears the stop flag so the superseding message's turn can run.
        """
        was = self._state.interrupted_by_new_message
        self._state.interrupted_by_new_message = False
        if was:
            self._state.stop_requested = False
        return was
