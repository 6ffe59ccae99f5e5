"""Backend A: Claude Agent SDK.

Runs claude_agent_sdk.query() with bypassed permissions and relies on the
relay's SafetyPolicy (plus the safety system prompt) for guarding tools.
Supports hard abort: a stop request preempts the wait for the next message.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from typing import Any

from claude_agent_sdk import (
    AssistantMessage,
    ClaudeAgentOptions,
    ResultMessage,
    SystemMessage,
    TextBlock,
    ThinkingBlock,
    ToolUseBlock,
    query,
)

from agentrelay.config.schema import ClaudeConfig, build_safety_prompt
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
from agentrelay.turns.runner import TurnRunner

log = get_logger("claude")

THINKING_BUDGETS = {"high": 50000, "medium": 10000, "low": 0}
THINKING_LABELS = {0: "off", 10000: "normal", 50000: "deep"}

QueryFn = Callable[..., AsyncIterator[Any]]


def thinking_budget(message: str, effort: str, config: ClaudeConfig) -> int:
    """Thinking tokens for a message.

    The effort sets the base budget; keywords in the message can only raise
    it (deep keywords are checked first).
    """
    lowered = message.lower()
    base = THINKING_BUDGETS.get(effort, 0)
    if any(k in lowered for k in config.thinking_deep_keywords):
        return max(base, 50000)
    if any(k in lowered for k in config.thinking_keywords):
        return max(base, 10000)
    return base


class ClaudeTurnRunner(TurnRunner):
    """Drives claude_agent_sdk.query() for one turn."""

    assistant = AssistantKind.CLAUDE
    hard_abort = True

    def __init__(self, *args: Any, query_fn: QueryFn | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._query = query_fn or query

    def build_options(self, message: str) -> ClaudeAgentOptions:
        cfg = self.config
        extra_args: dict[str, str | None] = {"chrome": None} if cfg.claude.enable_chrome else {}
        return ClaudeAgentOptions(
            model=self.state.model_id,
            cwd=cfg.paths.working_dir,
            setting_sources=["user", "project"],
            permission_mode="bypassPermissions",
            system_prompt=build_safety_prompt(cfg),
            max_thinking_tokens=thinking_budget(message, self.state.reasoning_effort, cfg.claude),
            add_dirs=list(cfg.paths.allowed_paths),
            resume=self.state.backend_session_id or None,
            extra_args=extra_args,
            cli_path=cfg.claude.cli_path,
        )

    def describe_start(self, message: str) -> str:
        budget = thinking_budget(message, self.state.reasoning_effort, self.config.claude)
        label = THINKING_LABELS.get(budget, str(budget))
        return f"{super().describe_start(message)} (thinking={label})"

    async def events(self, prompt: str, message: str) -> AsyncIterator[BackendEvent]:
        options = self.build_options(message)
        async for msg in self._query(prompt=prompt, options=options):
            if isinstance(msg, SystemMessage):
                session_id = (msg.data or {}).get("session_id")
                if session_id:
                    yield SessionAnnounced(session_id)

            elif isinstance(msg, AssistantMessage):
                for block in msg.content:
                    if isinstance(block, ThinkingBlock):
                        yield ThinkingContent(block.thinking)
                    elif isinstance(block, ToolUseBlock):
                        yield ToolInvocation(block.name, dict(block.input or {}))
                    elif isinstance(block, TextBlock):
                        yield TextContent(block.text)

            elif isinstance(msg, ResultMessage):
                if msg.total_cost_usd is not None:
                    log.debug(
                        "Result: turns=%d duration_ms=%d cost=$%.4f",
                        msg.num_turns,
                        msg.duration_ms,
                        msg.total_cost_usd,
                    )
                if msg.is_error:
                    yield TurnFailed(msg.result or f"Claude turn ended with {msg.subtype}")
                    return
                yield TurnCompleted(
                    session_id=msg.session_id,
                    usage=TokenUsage.from_mapping(msg.usage),
                )
