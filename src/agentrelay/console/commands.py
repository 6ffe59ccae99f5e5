"""Slash command handlers for the console relay."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table

from agentrelay.errors import SessionNotFound, SessionWrongScope
from agentrelay.session.state import AssistantKind

if TYPE_CHECKING:
    from agentrelay.safety import SafetyPolicy
    from agentrelay.session.chat_session import ChatSession

HELP = [
    ("/new", "Start a fresh session"),
    ("/stop", "Stop the running turn"),
    ("/status", "Show session and turn status"),
    ("/policy", "Show allowed paths and blocked commands"),
    ("/model <selection>", "Switch model (opus 4.6, sonnet 4.5, codex 5.3 high, ...)"),
    ("/assistant [claude|codex]", "Show or switch the assistant"),
    ("/resume [id|last]", "List saved sessions or resume one"),
    ("/retry", "Send the last message again"),
    ("/help", "Show this help message"),
    ("/quit", "Exit"),
    ("!<message>", "Interrupt the running turn and send a new message"),
]


def _ago(seconds: float) -> str:
    if seconds < 60:
        return f"{int(seconds)}s ago"
    if seconds < 3600:
        return f"{int(seconds // 60)}m ago"
    return f"{int(seconds // 3600)}h ago"


class CommandHandler:
    """Handles slash commands for one chat session."""

    def __init__(
        self,
        chat: ChatSession,
        policy: SafetyPolicy,
        console: Console | None = None,
    ) -> None:
        self.chat = chat
        self.policy = policy
        self.console = console or Console()
        self.should_quit = False

    async def handle(self, line: str) -> str | None:
        """Handle a slash command.

        Returns:
            A message to send as the next turn (/retry), otherwise None.
        """
        cmd, _, rest = line.strip().partition(" ")
        cmd = cmd.lower()
        arg = rest.strip()

        handlers = {
            "/new": self._cmd_new,
            "/stop": self._cmd_stop,
            "/status": self._cmd_status,
            "/policy": self._cmd_policy,
            "/model": self._cmd_model,
            "/assistant": self._cmd_assistant,
            "/resume": self._cmd_resume,
            "/retry": self._cmd_retry,
            "/help": self._cmd_help,
            "/quit": self._cmd_quit,
        }

        handler = handlers.get(cmd)
        if handler is None:
            self.console.print(f"[red]Unknown command: {cmd}[/red]")
            self.console.print("Type [bold]/help[/bold] for available commands.")
            return None
        return await handler(arg)

    def _busy(self) -> bool:
        if self.chat.state.is_busy:
            self.console.print("[yellow]A turn is running. Use /stop first.[/yellow]")
            return True
        return False

    async def _cmd_help(self, arg: str) -> None:
        table = Table(title="Available Commands")
        table.add_column("Command", style="bold")
        table.add_column("Description")
        for cmd, desc in HELP:
            table.add_row(cmd, desc)
        self.console.print(table)

    async def _cmd_new(self, arg: str) -> None:
        if self._busy():
            return
        self.chat.reset()
        self.console.print("🆕 Session cleared. Next message starts a new conversation.")

    async def _cmd_stop(self, arg: str) -> None:
        result = self.chat.request_stop()
        if result == "stopped":
            self.console.print("🛑 Stopping current turn...")
        elif result == "pending":
            self.console.print("🛑 Turn will be cancelled before it starts.")
        else:
            self.console.print("[dim]Nothing is running.[/dim]")

    async def _cmd_status(self, arg: str) -> None:
        state = self.chat.state
        now = datetime.now()
        c = self.console
        c.print("[bold]Status:[/bold]")
        c.print(f"  Assistant: {state.assistant.label} ({self.chat.model_display})")
        c.print(f"  Phase: {self.chat.phase.value}")
        if state.backend_session_id:
            c.print(f"  Session: {state.backend_session_id[:8]}... \"{state.conversation_title or ''}\"")
        else:
            c.print("  Session: none (next message starts fresh)")
        if state.turn_started:
            c.print(f"  Turn started: {_ago((now - state.turn_started).total_seconds())}")
        if state.current_tool:
            c.print(f"  Current tool: {state.current_tool}")
        if state.last_tool:
            c.print(f"  Last tool: {state.last_tool}")
        if state.last_activity:
            c.print(f"  Last activity: {_ago((now - state.last_activity).total_seconds())}")
        if state.last_usage:
            u = state.last_usage
            c.print(
                f"  Last usage: in={u.input_tokens} out={u.output_tokens} "
                f"cache_read={u.cache_read} cache_create={u.cache_create}"
            )
        if state.last_error:
            c.print(
                f"  [red]Last error ({_ago((now - state.last_error.time).total_seconds())}): "
                f"{state.last_error.message}[/red]"
            )
        c.print(f"  Working dir: {self.chat.working_dir}")

    async def _cmd_policy(self, arg: str) -> None:
        c = self.console
        c.print("[bold]Allowed paths:[/bold]")
        for path in self.policy.allowed_paths:
            c.print(f"  {path}")
        c.print("[bold]Always allowed (temp):[/bold]")
        for path in self.policy.temp_paths:
            c.print(f"  {path}")
        c.print("[bold]Blocked command patterns:[/bold]")
        for pattern in self.policy.blocked_patterns:
            c.print(f"  {pattern}", markup=False)

    async def _cmd_model(self, arg: str) -> None:
        if not arg:
            self.console.print(f"Current model: {self.chat.model_display} ({self.chat.model_debug})")
            self.console.print("Usage: /model <opus 4.6|sonnet 4.5|codex 5.3 high|...>")
            return
        if self._busy():
            return
        ok, message = self.chat.set_model(arg)
        self.console.print(message if ok else f"[red]{message}[/red]")

    async def _cmd_assistant(self, arg: str) -> None:
        if not arg:
            self.console.print(f"Assistant: {self.chat.state.assistant.label}")
            return
        try:
            kind = AssistantKind(arg.lower())
        except ValueError:
            self.console.print("[red]Usage: /assistant <claude|codex>[/red]")
            return
        if self._busy():
            return
        ok, message = self.chat.set_model(kind.value)
        self.console.print(message if ok else f"[red]{message}[/red]")

    async def _cmd_resume(self, arg: str) -> None:
        if not arg:
            self._list_sessions()
            return
        if self._busy():
            return

        try:
            if arg == "last":
                entry = self.chat.resume_last()
                if entry is None:
                    self.console.print("[dim]No saved sessions[/dim]")
                    return
            else:
                entry = self.chat.resume(self._expand_id(arg))
        except (SessionNotFound, SessionWrongScope) as e:
            self.console.print(f"[red]{e}[/red]")
            return
        self.console.print(f'✅ Resumed session: "{entry.title}" ({self.chat.model_display})')

    def _expand_id(self, prefix: str) -> str:
        """Allow the 8-character prefix shown in listings."""
        matches = [s.session_id for s in self.chat.list_saved() if s.session_id.startswith(prefix)]
        return matches[0] if len(matches) == 1 else prefix

    def _list_sessions(self) -> None:
        sessions = self.chat.list_saved()
        if not sessions:
            self.console.print("[dim]No saved sessions[/dim]")
            return
        table = Table(title="Saved Sessions")
        table.add_column("ID")
        table.add_column("Saved")
        table.add_column("Assistant")
        table.add_column("Title")
        for s in sessions:
            title = s.title if len(s.title) <= 35 else s.title[:32] + "..."
            table.add_row(
                s.session_id[:8],
                s.saved_at.strftime("%d/%m %H:%M"),
                f"{s.assistant} {s.model}",
                title,
            )
        self.console.print(table)

    async def _cmd_retry(self, arg: str) -> str | None:
        if self._busy():
            return None
        message = self.chat.state.last_message
        if not message:
            self.console.print("[dim]No message to retry[/dim]")
            return None
        preview = message if len(message) <= 50 else message[:50] + "..."
        self.console.print(f"🔄 Retrying: \"{preview}\"")
        return message

    async def _cmd_quit(self, arg: str) -> None:
        self.should_quit = True
