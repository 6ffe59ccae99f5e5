"""Tests for the console relay: renderer, slash commands and the input loop.

Tests coverage for:
- src/agentrelay/console/renderer.py
- src/agentrelay/console/commands.py
- src/agentrelay/console/repl.py
"""

from __future__ import annotations

import asyncio
from io import StringIO

import pytest
from rich.console import Console

from agentrelay.console.commands import CommandHandler
from agentrelay.console.renderer import ConsoleRenderer
from agentrelay.console.repl import ConsoleRelay
from agentrelay.session.chat_session import ChatSession
from agentrelay.session.state import AssistantKind, TokenUsage
from agentrelay.turns.ask_user import AskUserRequest
from agentrelay.turns.events import StatusKind
from tests.utils import FakeQuery, assistant, init_message, result, text, tool_use


@pytest.fixture
def console():
    return Console(file=StringIO(), force_terminal=False, width=120)


def output(console: Console) -> str:
    return console.file.getvalue()


@pytest.fixture
def chat(config):
    return ChatSession(config, chat_id="console", query_fn=FakeQuery())


@pytest.fixture
def handler(chat, policy, console):
    return CommandHandler(chat, policy, console)


def reply_query(reply: str = "Hi there!") -> FakeQuery:
    return FakeQuery(init_message("sess-1"), assistant(text(reply)), result("sess-1"))


# =============================================================================
# Renderer
# =============================================================================


class TestConsoleRenderer:
    """Tests for ConsoleRenderer."""

    @pytest.mark.asyncio
    async def test_segments_are_printed(self, console):
        renderer = ConsoleRenderer(console, markdown=False)

        await renderer(StatusKind.TEXT, "Hel", 0)
        await renderer(StatusKind.SEGMENT_END, "Hello", 0)
        await renderer(StatusKind.TOOL, "▶️ ls")
        await renderer(StatusKind.SEGMENT_END, "Done", 1)
        assert renderer.active
        await renderer(StatusKind.DONE, "")

        assert not renderer.active
        assert renderer.segments == {0: "Hello", 1: "Done"}
        assert "Hello" in output(console)
        assert "Done" in output(console)

    @pytest.mark.asyncio
    async def test_done_without_events(self, console):
        renderer = ConsoleRenderer(console)
        await renderer(StatusKind.DONE, "")
        assert not renderer.active

    @pytest.mark.asyncio
    async def test_new_turn_resets_segments(self, console):
        renderer = ConsoleRenderer(console, markdown=False)
        await renderer(StatusKind.SEGMENT_END, "first", 0)
        await renderer(StatusKind.DONE, "")
        await renderer(StatusKind.SEGMENT_END, "second", 0)
        await renderer(StatusKind.DONE, "")
        assert renderer.segments == {0: "second"}


# =============================================================================
# Slash commands
# =============================================================================


class TestCommandHandler:
    """Tests for CommandHandler."""

    @pytest.mark.asyncio
    async def test_unknown_command(self, handler, console):
        assert await handler.handle("/bogus") is None
        assert "Unknown command: /bogus" in output(console)

    @pytest.mark.asyncio
    async def test_help(self, handler, console):
        await handler.handle("/help")
        assert "/resume" in output(console)

    @pytest.mark.asyncio
    async def test_new_clears_session(self, handler, chat):
        chat.state.backend_session_id = "sess-1"
        await handler.handle("/new")
        assert chat.state.backend_session_id is None

    @pytest.mark.asyncio
    async def test_new_refused_while_busy(self, handler, chat, console):
        chat.state.backend_session_id = "sess-1"
        with chat.start_processing():
            await handler.handle("/new")
        assert chat.state.backend_session_id == "sess-1"
        assert "A turn is running" in output(console)

    @pytest.mark.asyncio
    async def test_stop_outcomes(self, handler, chat, console):
        await handler.handle("/stop")
        assert "Nothing is running" in output(console)

        with chat.start_processing():
            await handler.handle("/stop")
        assert "cancelled before it starts" in output(console)

    @pytest.mark.asyncio
    async def test_model_switch(self, handler, chat, console):
        await handler.handle("/model codex 5.3 high")
        assert chat.state.assistant is AssistantKind.CODEX
        assert "Model switched to codex 5.3 high" in output(console)

    @pytest.mark.asyncio
    async def test_model_without_argument_shows_current(self, handler, console):
        await handler.handle("/model")
        assert "Current model: opus 4.6" in output(console)

    @pytest.mark.asyncio
    async def test_assistant_switch(self, handler, chat):
        await handler.handle("/assistant codex")
        assert chat.state.assistant is AssistantKind.CODEX

    @pytest.mark.asyncio
    async def test_assistant_invalid(self, handler, chat, console):
        await handler.handle("/assistant gemini")
        assert chat.state.assistant is AssistantKind.CLAUDE
        assert "Usage: /assistant" in output(console)

    @pytest.mark.asyncio
    async def test_status(self, handler, chat, console):
        chat.state.backend_session_id = "abcdef123456"
        chat.state.conversation_title = "Parser work"
        chat.state.last_usage = TokenUsage(10, 5, 3, 2)

        await handler.handle("/status")

        text_out = output(console)
        assert "Claude (opus 4.6)" in text_out
        assert "abcdef12..." in text_out
        assert "in=10 out=5 cache_read=3 cache_create=2" in text_out
        assert chat.working_dir in text_out

    @pytest.mark.asyncio
    async def test_policy(self, handler, policy, console):
        await handler.handle("/policy")
        text_out = output(console)
        assert policy.working_dir in text_out
        assert "rm -rf /" in text_out

    @pytest.mark.asyncio
    async def test_resume_by_prefix(self, handler, chat, console):
        chat.state.backend_session_id = "abcdef123456"
        chat.state.conversation_title = "Parser work"
        chat.persist()
        chat.reset()

        await handler.handle("/resume abcdef12")

        assert chat.state.backend_session_id == "abcdef123456"
        assert 'Resumed session: "Parser work"' in output(console)

    @pytest.mark.asyncio
    async def test_resume_listing_and_errors(self, handler, console):
        await handler.handle("/resume")
        await handler.handle("/resume last")
        await handler.handle("/resume missing")
        text_out = output(console)
        assert "No saved sessions" in text_out
        assert "Session not found: missing" in text_out

    @pytest.mark.asyncio
    async def test_retry(self, handler, chat, console):
        assert await handler.handle("/retry") is None
        chat.state.last_message = "do it again"
        assert await handler.handle("/retry") == "do it again"

    @pytest.mark.asyncio
    async def test_quit(self, handler):
        await handler.handle("/QUIT")
        assert handler.should_quit


# =============================================================================
# Relay loop
# =============================================================================


class TestConsoleRelay:
    """Tests for ConsoleRelay input handling."""

    @pytest.mark.asyncio
    async def test_message_runs_turn(self, config, policy, console):
        chat = ChatSession(config, chat_id="console", query_fn=reply_query())
        relay = ConsoleRelay(chat, policy, console)

        await relay.handle_line("hello")
        reply = await relay.wait()

        assert reply == "Hi there!"
        assert "Hi there!" in output(console)
        assert not chat.state.is_busy

    @pytest.mark.asyncio
    async def test_blank_line_ignored(self, chat, policy, console):
        relay = ConsoleRelay(chat, policy, console)
        await relay.handle_line("   ")
        assert await relay.wait() is None

    @pytest.mark.asyncio
    async def test_busy_rejects_plain_message(self, chat, policy, console):
        relay = ConsoleRelay(chat, policy, console)
        with chat.start_processing():
            await relay.handle_line("second message")
        assert await relay.wait() is None
        assert "prefix the message with !" in output(console)

    @pytest.mark.asyncio
    async def test_unsafe_action_is_reported(self, config, policy, console):
        fake = FakeQuery(init_message("sess-1"), assistant(tool_use("Bash", {"command": "rm -rf /"})))
        chat = ChatSession(config, chat_id="console", query_fn=fake)
        relay = ConsoleRelay(chat, policy, console)

        await relay.handle_line("wipe")
        assert await relay.wait() is None
        assert "Unsafe action blocked" in output(console)

    @pytest.mark.asyncio
    async def test_interrupt_with_new_message(self, config, policy, console):
        """Test that !message stops the running turn and sends the new one."""
        hanging = FakeQuery(init_message("sess-1"), assistant(text("Working...")), hang=True)
        chat = ChatSession(config, chat_id="console", query_fn=hanging)
        relay = ConsoleRelay(chat, policy, console)

        await relay.handle_line("long job")
        while not chat.state.is_running:
            await asyncio.sleep(0)

        chat._runners[AssistantKind.CLAUDE]._query = reply_query("Switched.")
        await asyncio.wait_for(relay.handle_line("!do this instead"), timeout=2.0)
        reply = await asyncio.wait_for(relay.wait(), timeout=2.0)

        assert reply == "Switched."
        assert not chat.state.interrupted_by_new_message
        assert not chat.state.stop_requested

    @pytest.mark.asyncio
    async def test_slash_retry_submits(self, config, policy, console):
        chat = ChatSession(config, chat_id="console", query_fn=reply_query("Again."))
        chat.state.last_message = "repeat"
        relay = ConsoleRelay(chat, policy, console)

        await relay.handle_line("/retry")

        assert await relay.wait() == "Again."

    @pytest.mark.asyncio
    async def test_choice_resolves_option_number(self, config, policy, console):
        fake = reply_query("Blue it is.")
        chat = ChatSession(config, chat_id="console", query_fn=fake)
        relay = ConsoleRelay(chat, policy, console)

        await relay._present_choice(AskUserRequest("req-1", "console", "Which one?", ["Red", "Blue"]))
        await relay.handle_line("2")
        await relay.wait()

        assert "Which one?" in output(console)
        assert fake.prompt.endswith("Blue")

    @pytest.mark.asyncio
    async def test_shutdown_stops_running_turn(self, config, policy, console):
        hanging = FakeQuery(init_message("sess-1"), hang=True)
        chat = ChatSession(config, chat_id="console", query_fn=hanging)
        relay = ConsoleRelay(chat, policy, console)

        relay.submit("long job")
        while not chat.state.is_running:
            await asyncio.sleep(0)

        await asyncio.wait_for(relay.shutdown(), timeout=2.0)

        assert not chat.state.is_running
