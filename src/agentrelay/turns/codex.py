"""Backend B: Codex CLI.

No hard abort is available; a stop request is honored at the next event.
A thread that cannot be resumed is replaced by a fresh one.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from agentrelay.backends.codex_exec import CodexClient, CodexThread, ThreadOptions
from agentrelay.errors import ResumeFailed
from agentrelay.logging import get_logger
from agentrelay.session.state import AssistantKind, TokenUsage
from agentrelay.turns.events import (
    BackendEvent,
    SessionAnnounced,
    TextContent,
    ThinkingContent,
    ToolInvocation,
    TurnCompleted,
    TurnFailed,
)
from agentrelay.turns.runner import TurnRunner, date_preamble

log = get_logger("codex")


def translate_item(item: dict[str, Any]) -> BackendEvent | None:
    """Map a completed Codex item to a BackendEvent (None to ignore it)."""
    itype = item.get("type")
    text = item.get("text") or ""

    if itype == "reasoning" and text:
        return ThinkingContent(text)
    if itype == "agent_message" and text:
        return TextContent(text)
    if itype == "command_execution":
        return ToolInvocation("Bash", {"command": item.get("command") or ""})
    if itype == "mcp_tool_call":
        name = f"mcp__{item.get('server', '')}__{item.get('tool', '')}"
        arguments = item.get("arguments")
        return ToolInvocation(name, arguments if isinstance(arguments, dict) else {})
    if itype == "web_search":
        return ToolInvocation("WebSearch", {"query": item.get("query") or ""})

    log.debug("Ignoring Codex item: %s", itype)
    return None


class CodexTurnRunner(TurnRunner):
    """Drives `codex exec` for one turn."""

    assistant = AssistantKind.CODEX
    hard_abort = False

    def __init__(self, *args: Any, client: CodexClient | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._client = client or CodexClient(binary=self.config.codex.binary)

    def thread_options(self) -> ThreadOptions:
        paths = self.config.paths
        additional = list(dict.fromkeys([paths.working_dir, *paths.allowed_paths]))
        return ThreadOptions.from_config(
            self.config.codex,
            model=self.state.model_id,
            effort=self.state.reasoning_effort,
            working_dir=paths.working_dir,
            additional_dirs=additional,
        )

    def open_thread(self) -> CodexThread:
        """Resume the current thread, or start a new one if that fails."""
        options = self.thread_options()
        thread_id = self.state.backend_session_id
        if thread_id:
            try:
                return self._client.resume_thread(thread_id, options)
            except ResumeFailed as e:
                log.warning("Failed to resume Codex thread %s, starting a new one: %s", thread_id, e)
                self.state.backend_session_id = None
        return self._client.start_thread(options)

    def describe_start(self, message: str) -> str:
        codex = self.config.codex
        return (
            f"{super().describe_start(message)} (model={self.state.model_id}, "
            f"effort={self.state.reasoning_effort}, sandbox={codex.sandbox_mode}, "
            f"approval={codex.approval_policy}, network={codex.network_access}, "
            f"web_search={codex.web_search})"
        )

    async def events(self, prompt: str, message: str) -> AsyncIterator[BackendEvent]:
        thread = self.open_thread()
        if prompt == message and not self.state.backend_session_id:
            # Resume fell back to a fresh thread, which needs the preamble too
            prompt = date_preamble() + message
        async for event in thread.run_streamed(prompt):
            etype = event.get("type")

            if etype == "thread.started":
                if event.get("thread_id"):
                    yield SessionAnnounced(str(event["thread_id"]))

            elif etype == "error":
                yield TurnFailed(event.get("message") or "Unknown Codex stream error")
                return

            elif etype == "turn.failed":
                error = event.get("error") or {}
                yield TurnFailed(error.get("message") or "Codex turn failed")
                return

            elif etype == "item.completed":
                item = event.get("item")
                if isinstance(item, dict):
                    translated = translate_item(item)
                    if translated is not None:
                        yield translated

            elif etype == "turn.completed":
                yield TurnCompleted(
                    session_id=thread.id,
                    usage=TokenUsage.from_mapping(event.get("usage")),
                )
                return
