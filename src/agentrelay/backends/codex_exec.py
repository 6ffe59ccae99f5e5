"""Codex CLI client over an asyncio subprocess.

Each turn runs `codex exec --experimental-json`, writes the prompt to stdin
and reads thread events as JSON Lines from stdout:

    {"type": "thread.started", "thread_id": "..."}
    {"type": "turn.started"}
    {"type": "item.completed", "item": {"type": "agent_message", "text": "..."}}
    {"type": "turn.completed", "usage": {"input_tokens": ..., ...}}
    {"type": "turn.failed", "error": {"message": "..."}}

Resuming appends `resume <thread_id>` to the command line.
"""

from __future__ import annotations

import asyncio
import json
import os
import re
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from agentrelay.config.schema import CodexConfig
from agentrelay.errors import BackendTurnFailed, ResumeFailed
from agentrelay.logging import get_logger

log = get_logger("codex")

# Agent messages arrive as a single JSON line and can be large
STREAM_LIMIT = 16 * 1024 * 1024
STDERR_TAIL = 500

_THREAD_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._:-]*$")


@dataclass
class ThreadOptions:
    """Per-thread settings passed to `codex exec`."""

    model: str
    reasoning_effort: str
    working_dir: str
    sandbox_mode: str = "workspace-write"
    approval_policy: str = "never"
    network_access: bool = True
    web_search: str = "live"
    additional_dirs: list[str] = field(default_factory=list)
    skip_git_repo_check: bool = True

    @classmethod
    def from_config(
        cls,
        config: CodexConfig,
        model: str,
        effort: str,
        working_dir: str,
        additional_dirs: list[str],
    ) -> ThreadOptions:
        return cls(
            model=model,
            reasoning_effort=effort,
            working_dir=working_dir,
            sandbox_mode=config.sandbox_mode,
            approval_policy=config.approval_policy,
            network_access=config.network_access,
            web_search=config.web_search,
            additional_dirs=additional_dirs,
        )


class CodexThread:
    """One Codex conversation; id is None until the CLI announces it."""

    def __init__(
        self,
        binary: str,
        options: ThreadOptions,
        thread_id: str | None = None,
        env: dict[str, str] | None = None,
    ) -> None:
        self._binary = binary
        self._options = options
        self._env = env
        self.id = thread_id

    def build_args(self) -> list[str]:
        """Command line for the next turn on this thread."""
        opts = self._options
        network = "true" if opts.network_access else "false"
        args = [
            self._binary,
            "exec",
            "--experimental-json",
            "--model",
            opts.model,
            "--sandbox",
            opts.sandbox_mode,
            "--cd",
            opts.working_dir,
        ]
        for directory in opts.additional_dirs:
            args.extend(["--add-dir", directory])
        if opts.skip_git_repo_check:
            args.append("--skip-git-repo-check")
        args.extend(["--config", f'model_reasoning_effort="{opts.reasoning_effort}"'])
        args.extend(["--config", f"sandbox_workspace_write.network_access={network}"])
        args.extend(["--config", f'web_search="{opts.web_search}"'])
        args.extend(["--config", f'approval_policy="{opts.approval_policy}"'])
        if self.id:
            args.extend(["resume", self.id])
        return args

    async def run_streamed(self, prompt: str) -> AsyncIterator[dict[str, Any]]:
        """Run one turn and yield its events.

        The subprocess is terminated if the consumer stops iterating early.

        Raises:
            BackendTurnFailed: If the CLI cannot be started or exits non-zero
                without having reported a turn failure itself.
        """
        args = self.build_args()
        process_env = os.environ.copy()
        if self._env:
            process_env.update(self._env)

        log.debug("Spawning: %s", " ".join(args[:3]))
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self._options.working_dir,
                env=process_env,
                limit=STREAM_LIMIT,
            )
        except FileNotFoundError as e:
            raise BackendTurnFailed(f"Codex CLI not found: {self._binary}", "Codex") from e
        except OSError as e:
            raise BackendTurnFailed(f"Failed to start Codex CLI: {e}", "Codex") from e

        assert process.stdin is not None and process.stdout is not None
        stderr_task = asyncio.ensure_future(_drain(process.stderr))
        reported_failure = False

        try:
            try:
                process.stdin.write(prompt.encode("utf-8"))
                await process.stdin.drain()
                process.stdin.close()
            except (BrokenPipeError, ConnectionResetError) as e:
                # CLI exited before reading the prompt; its exit code tells why
                log.debug("Codex stdin closed early: %s", e)

            async for raw in process.stdout:
                line = raw.decode("utf-8", errors="replace").strip()
                if not line:
                    continue
                try:
                    event = json.loads(line)
                except ValueError:
                    log.debug("Ignoring non-JSON Codex output: %s", line[:200])
                    continue
                if not isinstance(event, dict):
                    continue

                etype = event.get("type")
                if etype == "thread.started" and event.get("thread_id"):
                    self.id = str(event["thread_id"])
                elif etype in ("turn.failed", "error"):
                    reported_failure = True
                yield event

            exit_code = await process.wait()
            stderr = await stderr_task
            if exit_code != 0 and not reported_failure:
                tail = stderr.strip()[-STDERR_TAIL:]
                raise BackendTurnFailed(
                    f"Codex exited with code {exit_code}: {tail}" if tail else f"Codex exited with code {exit_code}",
                    "Codex",
                )
        finally:
            if process.returncode is None:
                try:
                    process.terminate()
                    try:
                        await asyncio.wait_for(process.wait(), timeout=5.0)
                    except asyncio.TimeoutError:
                        process.kill()
                        await process.wait()
                except ProcessLookupError:
                    pass  # Process already gone
            if not stderr_task.done():
                stderr_task.cancel()


async def _drain(stream: asyncio.StreamReader | None) -> str:
    if stream is None:
        return ""
    data = await stream.read()
    return data.decode("utf-8", errors="replace")


class CodexClient:
    """Starts and resumes Codex threads.

    Args:
        binary: Codex CLI executable.
        sessions_dir: Where the CLI keeps thread rollouts; when it exists,
            resume_thread() checks the thread is there.
        env: Extra environment variables for the CLI.
    """

    def __init__(
        self,
        binary: str = "codex",
        sessions_dir: str | Path | None = None,
        env: dict[str, str] | None = None,
    ) -> None:
        self._binary = binary
        if sessions_dir is None:
            codex_home = os.environ.get("CODEX_HOME") or os.path.expanduser("~/.codex")
            sessions_dir = Path(codex_home) / "sessions"
        self._sessions_dir = Path(sessions_dir)
        self._env = env

    def start_thread(self, options: ThreadOptions) -> CodexThread:
        return CodexThread(self._binary, options, env=self._env)

    def resume_thread(self, thread_id: str, options: ThreadOptions) -> CodexThread:
        """Reopen an existing thread.

        Raises:
            ResumeFailed: The id is malformed or no rollout exists for it.
        """
        if not thread_id or not _THREAD_ID.match(thread_id):
            raise ResumeFailed(thread_id, "malformed thread id")
        if self._sessions_dir.is_dir() and not any(
            self._sessions_dir.rglob(f"rollout-*{thread_id}*.jsonl")
        ):
            raise ResumeFailed(thread_id, f"no rollout under {self._sessions_dir}")
        return CodexThread(self._binary, options, thread_id=thread_id, env=self._env)
