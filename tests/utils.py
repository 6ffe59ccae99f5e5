"""Shared test utilities for agentrelay tests."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Any

from claude_agent_sdk import (
    AssistantMessage,
    ResultMessage,
    SystemMessage,
    TextBlock,
    ThinkingBlock,
    ToolUseBlock,
)

from agentrelay.backends.codex_exec import ThreadOptions
from agentrelay.config.loader import dict_to_config, finalize_paths
from agentrelay.config.schema import RelayConfig
from agentrelay.errors import ResumeFailed

MODEL = "claude-opus-4-6"


def make_config(tmp_path: Path, **sections: Any) -> RelayConfig:
    """Build a finalized RelayConfig rooted under tmp_path.

    Streaming delays and ask-user waits are zeroed so tests run fast.
    """
    work = tmp_path / "work"
    work.mkdir(exist_ok=True)
    data: dict[str, Any] = {
        "paths": {"working_dir": str(work), "runtime_dir": str(tmp_path / "runtime")},
        "streaming": {"synthetic_step_delay_ms": 0},
        "ask_user": {
            "directory": str(tmp_path / "ask"),
            "initial_delay_ms": 0,
            "retry_delay_ms": 0,
        },
    }
    for key, value in sections.items():
        if isinstance(value, dict) and isinstance(data.get(key), dict):
            data[key] = {**data[key], **value}
        else:
            data[key] = value
    return finalize_paths(dict_to_config(data))


# -----------------------------------------------------------------------------
# Backend A: Claude Agent SDK messages
# -----------------------------------------------------------------------------


def init_message(session_id: str) -> SystemMessage:
    return SystemMessage(subtype="init", data={"type": "system", "subtype": "init", "session_id": session_id})


def assistant(*blocks: Any) -> AssistantMessage:
    return AssistantMessage(content=list(blocks), model=MODEL)


def text(value: str) -> TextBlock:
    return TextBlock(text=value)


def thinking(value: str) -> ThinkingBlock:
    return ThinkingBlock(thinking=value, signature="sig")


def tool_use(name: str, tool_input: dict[str, Any], tool_id: str = "toolu_1") -> ToolUseBlock:
    return ToolUseBlock(id=tool_id, name=name, input=tool_input)


def result(
    session_id: str,
    usage: dict[str, Any] | None = None,
    is_error: bool = False,
    result_text: str | None = None,
) -> ResultMessage:
    return ResultMessage(
        subtype="error_during_execution" if is_error else "success",
        duration_ms=1200,
        duration_api_ms=1000,
        is_error=is_error,
        num_turns=1,
        session_id=session_id,
        total_cost_usd=0.01,
        usage=usage,
        result=result_text,
    )


class FakeQuery:
    """Stand-in for claude_agent_sdk.query() that replays messages.

    If hang is set, the stream blocks forever after the last message, which
    is what a long-running tool looks like from the relay's side.
    """

    def __init__(self, *messages: Any, hang: bool = False, error: Exception | None = None) -> None:
        self.messages = list(messages)
        self.hang = hang
        self.error = error
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    def __call__(self, *, prompt: str, options: Any) -> AsyncIterator[Any]:
        self.calls.append({"prompt": prompt, "options": options})
        return self._stream()

    async def _stream(self) -> AsyncIterator[Any]:
        try:
            for message in self.messages:
                yield message
            if self.error is not None:
                raise self.error
            if self.hang:
                await asyncio.Event().wait()
        finally:
            self.closed = True

    @property
    def prompt(self) -> str:
        return self.calls[-1]["prompt"]

    @property
    def options(self) -> Any:
        return self.calls[-1]["options"]


# -----------------------------------------------------------------------------
# Backend B: Codex thread events
# -----------------------------------------------------------------------------


def thread_started(thread_id: str) -> dict[str, Any]:
    return {"type": "thread.started", "thread_id": thread_id}


def item(item_type: str, **fields: Any) -> dict[str, Any]:
    return {"type": "item.completed", "item": {"id": "item_0", "type": item_type, **fields}}


def turn_completed(**usage: int) -> dict[str, Any]:
    return {"type": "turn.completed", "usage": usage}


class FakeThread:
    """CodexThread double replaying JSON events.

    before_event maps an event index to a hook run before that event is
    produced; a hook may raise to simulate a stream error.
    """

    def __init__(
        self,
        events: list[dict[str, Any]],
        thread_id: str | None = None,
        before_event: dict[int, Callable[[], None]] | None = None,
    ) -> None:
        self.events = events
        self.id = thread_id
        self.before_event = before_event or {}
        self.prompts: list[str] = []

    async def run_streamed(self, prompt: str) -> AsyncIterator[dict[str, Any]]:
        self.prompts.append(prompt)
        for index, event in enumerate(self.events):
            hook = self.before_event.get(index)
            if hook is not None:
                hook()
            if event.get("type") == "thread.started":
                self.id = event["thread_id"]
            yield event


class FakeCodexClient:
    """CodexClient double that hands out FakeThreads."""

    def __init__(
        self,
        events: list[dict[str, Any]],
        resume_error: bool = False,
        before_event: dict[int, Callable[[], None]] | None = None,
    ) -> None:
        self._events = events
        self._resume_error = resume_error
        self._before_event = before_event
        self.started: list[ThreadOptions] = []
        self.resumed: list[str] = []
        self.threads: list[FakeThread] = []

    def start_thread(self, options: ThreadOptions) -> FakeThread:
        self.started.append(options)
        thread = FakeThread(self._events, before_event=self._before_event)
        self.threads.append(thread)
        return thread

    def resume_thread(self, thread_id: str, options: ThreadOptions) -> FakeThread:
        if self._resume_error:
            raise ResumeFailed(thread_id, "thread not found")
        self.resumed.append(thread_id)
        thread = FakeThread(self._events, thread_id=thread_id, before_event=self._before_event)
        self.threads.append(thread)
        return thread


def write_ask_user_request(
    directory: Path,
    request_id: str,
    chat_id: str,
    options: list[str] | None = None,
    status: str = "pending",
) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"ask-user-{request_id}.json"
    path.write_text(
        json.dumps(
            {
                "request_id": request_id,
                "chat_id": chat_id,
                "question": "Which one?",
                "options": options if options is not None else ["Red", "Blue"],
                "status": status,
            }
        ),
        encoding="utf-8",
    )
    return path
