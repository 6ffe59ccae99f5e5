"""Backend clients that are not covered by an SDK."""

from agentrelay.backends.codex_exec import CodexClient, CodexThread, ThreadOptions

__all__ = ["CodexClient", "CodexThread", "ThreadOptions"]
