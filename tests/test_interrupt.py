"""Tests for stop and interrupt coordination.

Tests coverage for:
- src/agentrelay/session/interrupt.py
"""

from __future__ import annotations

import pytest

from agentrelay.errors import TurnCancelled
from agentrelay.session.interrupt import InterruptController, TurnPhase
from agentrelay.session.state import AssistantKind, SessionState


@pytest.fixture
def state():
    return SessionState(assistant=AssistantKind.CLAUDE, model_id="claude-opus-4-6", reasoning_effort="high")


@pytest.fixture
def controller(state):
    return InterruptController(state)


class TestPhases:
    """Tests for the IDLE -> PROCESSING -> RUNNING -> IDLE lifecycle."""

    def test_starts_idle(self, controller):
        assert controller.phase is TurnPhase.IDLE

    def test_processing_context(self, controller, state):
        with controller.processing():
            assert state.is_processing
            assert controller.phase is TurnPhase.PROCESSING
        assert not state.is_processing
        assert controller.phase is TurnPhase.IDLE

    def test_processing_cleared_on_error(self, controller, state):
        with pytest.raises(RuntimeError):
            with controller.processing():
                raise RuntimeError("boom")
        assert not state.is_processing

    def test_begin_and_end_turn(self, controller, state):
        controller.begin_turn(hard_abort=False)
        assert state.is_running
        assert controller.phase is TurnPhase.RUNNING

        controller.end_turn()
        assert not state.is_running
        assert controller.phase is TurnPhase.IDLE

    def test_cancelled_phase_while_stopping(self, controller):
        controller.begin_turn(hard_abort=False)
        controller.request_stop()
        assert controller.phase is TurnPhase.CANCELLED


class TestRequestStop:
    """Tests for InterruptController.request_stop()."""

    def test_nothing_running(self, controller, state):
        assert controller.request_stop() is False
        assert not state.stop_requested

    @pytest.mark.asyncio
    async def test_hard_abort_sets_token(self, controller, state):
        abort = controller.begin_turn(hard_abort=True)
        assert abort is not None and not abort.is_set()

        assert controller.request_stop() == "stopped"
        assert abort.is_set()
        assert state.stop_requested

    def test_cooperative_stop_sets_flag_only(self, controller, state):
        assert controller.begin_turn(hard_abort=False) is None
        assert controller.request_stop() == "stopped"
        assert state.stop_requested
        assert controller.abort_event is None

    def test_stop_while_processing_is_pending(self, controller, state):
        with controller.processing():
            assert controller.request_stop() == "pending"
        assert state.stop_requested

    def test_pending_stop_cancels_next_turn_once(self, controller, state):
        """Test that a stop before the turn starts cancels exactly one turn."""
        with controller.processing():
            controller.request_stop()
            with pytest.raises(TurnCancelled):
                controller.begin_turn(hard_abort=True)

        assert not state.stop_requested
        assert not state.is_running
        controller.begin_turn(hard_abort=True)
        assert state.is_running

    @pytest.mark.asyncio
    async def test_end_turn_clears_stop_and_token(self, controller, state):
        controller.begin_turn(hard_abort=True)
        controller.request_stop()
        controller.end_turn()

        assert not state.stop_requested
        assert controller.abort_event is None


class TestInterruptFlag:
    """Tests for the interrupted-by-new-message flag."""

    def test_consume_without_flag(self, controller):
        assert controller.consume_interrupt_flag() is False

    def test_consume_resets_flag_and_stop(self, controller, state):
        controller.begin_turn(hard_abort=False)
        controller.mark_interrupted_by_new_message()
        controller.request_stop()

        assert controller.consume_interrupt_flag() is True
        assert not state.interrupted_by_new_message
        assert not state.stop_requested
        assert controller.consume_interrupt_flag() is False

    def test_consume_without_flag_keeps_stop(self, controller, state):
        controller.begin_turn(hard_abort=False)
        controller.request_stop()
        controller.consume_interrupt_flag()
        assert state.stop_requested

    def test_clear_stop_requested(self, controller, state):
        state.stop_requested = True
        controller.clear_stop_requested()
        assert not state.stop_requested
