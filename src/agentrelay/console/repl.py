"""Interactive console relay.

Stands in for a chat transport: each line is a message (or a slash command)
for one ChatSession. Turns run as background tasks so /stop and !-prefixed
interrupts can be typed while the agent is working.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from prompt_toolkit import PromptSession
from prompt_toolkit.auto_suggest import AutoSuggestFromHistory
from prompt_toolkit.history import FileHistory
from rich.console import Console

from agentrelay.console.commands import CommandHandler
from agentrelay.console.renderer import ConsoleRenderer
from agentrelay.errors import BackendTurnFailed, UnsafeAction
from agentrelay.logging import get_logger
from agentrelay.turns.runner import AWAITING_SELECTION

if TYPE_CHECKING:
    from pathlib import Path

    from agentrelay.safety import SafetyPolicy
    from agentrelay.session.chat_session import ChatSession
    from agentrelay.turns.ask_user import AskUserRequest

log = get_logger("console")

INTERRUPT_PREFIX = "!"


class ConsoleRelay:
    """Relay loop between the terminal and one ChatSession."""

    def __init__(
        self,
        chat: ChatSession,
        policy: SafetyPolicy,
        console: Console | None = None,
        history_file: Path | None = None,
    ) -> None:
        self.chat = chat
        self.console = console or Console()
        self.renderer = ConsoleRenderer(self.console)
        self.commands = CommandHandler(chat, policy, self.console)
        self._turn: asyncio.Task[str | None] | None = None
        self._pending_choice: AskUserRequest | None = None
        self._history_file = history_file
        self._prompt: PromptSession[str] | None = None

    @property
    def prompt(self) -> PromptSession[str]:
        if self._prompt is None:
            history = FileHistory(str(self._history_file)) if self._history_file else None
            self._prompt = PromptSession(history=history, auto_suggest=AutoSuggestFromHistory())
        return self._prompt

    async def run(self) -> None:
        """Run the interactive relay until /quit or EOF."""
        self.console.print(
            f"[bold]agentrelay[/bold] - {self.chat.state.assistant.label} ({self.chat.model_display})"
        )
        self.console.print("Type [bold]/help[/bold] for commands, [bold]/quit[/bold] to exit.\n")

        loop = asyncio.get_running_loop()
        while True:
            try:
                line = await loop.run_in_executor(None, lambda: self.prompt.prompt("relay> "))
            except KeyboardInterrupt:
                continue
            except EOFError:
                break

            await self.handle_line(line)
            if self.commands.should_quit:
                break

        await self.shutdown()

    async def handle_line(self, line: str) -> None:
        """Dispatch one line of input."""
        line = line.strip()
        if not line:
            return

        if line.startswith("/"):
            follow_up = await self.commands.handle(line)
            if follow_up:
                self.submit(follow_up)
            return

        if line.startswith(INTERRUPT_PREFIX):
            await self.interrupt_with(line[len(INTERRUPT_PREFIX):].strip())
            return

        if self._pending_choice is not None:
            line = self._resolve_choice(line)

        if self.chat.state.is_busy:
            self.console.print(
                "[yellow]A turn is running. Use /stop, or prefix the message with ! to interrupt.[/yellow]"
            )
            return
        self.submit(line)

    def submit(self, message: str) -> asyncio.Task[str | None]:
        """Start a turn in the background."""
        self._turn = asyncio.create_task(self._run_turn(message))
        return self._turn

    async def wait(self) -> str | None:
        """Wait for the current turn, if any."""
        if self._turn is None:
            return None
        return await self._turn

    async def interrupt_with(self, message: str) -> None:
        """Stop the running turn, then send message once it has wound down."""
        if self.chat.state.is_busy:
            self.chat.mark_interrupted_by_new_message()
            self.chat.request_stop()
            await self.wait()
            self.chat.consume_interrupt_flag()
        if message:
            self.submit(message)

    async def shutdown(self) -> None:
        if self._turn is not None and not self._turn.done():
            self.chat.request_stop()
            try:
                await asyncio.wait_for(self._turn, timeout=10.0)
            except asyncio.TimeoutError:
                # wait_for has cancelled the turn task; the runner emits done
                log.warning("Turn did not stop in time, cancelled")

    async def _run_turn(self, message: str) -> str | None:
        with self.chat.start_processing():
            try:
                result = await self.chat.send_message(
                    message, self.renderer, on_ask_user=self._present_choice
                )
            except UnsafeAction as e:
                self.console.print(f"[bold red]⚠️ {e}[/bold red]")
                return None
            except BackendTurnFailed as e:
                self.console.print(f"[red]Error: {e}[/red]")
                return None

        if result is None:
            self.console.print("[dim]Cancelled.[/dim]")
        elif result == AWAITING_SELECTION:
            log.debug("Turn paused for user selection")
        return result

    async def _present_choice(self, request: AskUserRequest) -> None:
        self._pending_choice = request
        self.console.print(f"❓ {request.question}")
        for i, option in enumerate(request.options, 1):
            self.console.print(f"  [bold]{i}[/bold]. {option}")
        self.console.print("[dim]Reply with a number or free text.[/dim]")

    def _resolve_choice(self, line: str) -> str:
        request = self._pending_choice
        self._pending_choice = None
        if request is not None and line.isdigit():
            index = int(line) - 1
            if 0 <= index < len(request.options):
                return request.options[index]
        return line
