"""Configuration schema dataclasses for agentrelay.

Every section has defaults so a partial YAML file (or none at all) still
produces a usable RelayConfig.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

CLAUDE_EFFORTS = ("low", "medium", "high")
CODEX_EFFORTS = ("minimal", "low", "medium", "high", "xhigh")
CODEX_SANDBOX_MODES = ("read-only", "workspace-write", "danger-full-access")
CODEX_APPROVAL_POLICIES = ("never", "on-request", "on-failure", "untrusted")
CODEX_WEB_SEARCH_MODES = ("disabled", "cached", "live")

DEFAULT_BLOCKED_PATTERNS = [
    "rm -rf /",
    "rm -rf ~",
    "rm -rf $HOME",
    "sudo rm",
    ":(){ :|:& };:",  # fork bomb
    "> /dev/sd",
    "mkfs.",
    "dd if=",
]


@dataclass
class ClaudeConfig:
    """Backend A (Claude Agent SDK) settings."""

    model: str = "claude-opus-4-6"
    reasoning_effort: str = "high"  # low | medium | high
    enable_chrome: bool = False
    cli_path: str | None = None
    thinking_keywords: list[str] = field(
        default_factory=lambda: ["think", "pensa", "ragiona"]
    )
    thinking_deep_keywords: list[str] = field(
        default_factory=lambda: ["ultrathink", "think hard", "pensa bene"]
    )


@dataclass
class CodexConfig:
    """Backend B (Codex CLI) settings."""

    model: str = "gpt-5.3-codex"
    reasoning_effort: str = "medium"  # minimal | low | medium | high | xhigh
    sandbox_mode: str = "workspace-write"
    approval_policy: str = "never"
    network_access: bool = True
    web_search: str = "live"
    binary: str = "codex"


@dataclass
class PathsConfig:
    """Working directory, runtime files and the file-access allowlist.

    Relative paths are resolved against working_dir by the loader.
    """

    working_dir: str = ""
    runtime_dir: str = ""  # Default: <working_dir>/sessions
    temp_dir: str = ""  # Default: <runtime_dir>/relay
    session_file: str = ""  # Default: <runtime_dir>/agentrelay-sessions.yaml
    allowed_paths: list[str] = field(default_factory=list)  # Replaces defaults when set
    allowed_paths_extra: list[str] = field(default_factory=list)
    allowed_paths_remove: list[str] = field(default_factory=list)


@dataclass
class SafetyConfig:
    """Command and path safety rules."""

    blocked_patterns: list[str] = field(
        default_factory=lambda: list(DEFAULT_BLOCKED_PATTERNS)
    )
    temp_paths: list[str] = field(
        default_factory=lambda: ["/tmp/", "/private/tmp/", "/var/folders/"]
    )  # Runtime dir is prepended by the loader
    credentials_dirs: list[str] = field(default_factory=lambda: ["~/.claude"])


@dataclass
class StreamingConfig:
    """Streaming normalizer tuning."""

    throttle_ms: int = 250
    synthetic_min_chars: int = 280
    synthetic_step_chars: int = 220
    synthetic_step_delay_ms: int = 80
    debug: bool = False


@dataclass
class SessionConfig:
    """Session history and turn settings."""

    max_history: int = 5
    query_timeout: float = 180.0  # Advisory only, not enforced by the runners


@dataclass
class AskUserConfig:
    """Side channel used by the ask-user tool to publish pending questions."""

    directory: str = "/tmp"
    attempts: int = 3
    initial_delay_ms: int = 200
    retry_delay_ms: int = 100


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str | None = None  # DEBUG, INFO, WARNING, ERROR
    verbose: int | None = None  # 0-4, takes precedence over level
    file: str | None = None


@dataclass
class RelayConfig:
    """Root configuration object."""

    assistant: str = "claude"  # claude | codex
    claude: ClaudeConfig = field(default_factory=ClaudeConfig)
    codex: CodexConfig = field(default_factory=CodexConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)
    safety: SafetyConfig = field(default_factory=SafetyConfig)
    streaming: StreamingConfig = field(default_factory=StreamingConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    ask_user: AskUserConfig = field(default_factory=AskUserConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Unknown top-level keys, kept for extensions
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def working_dir(self) -> str:
        return self.paths.working_dir

    @property
    def allowed_paths(self) -> list[str]:
        return self.paths.allowed_paths


def build_safety_prompt(config: RelayConfig) -> str:
    """System prompt passed to backend A describing the file-access rules."""
    paths_list = "\n".join(
        f"   - {p} (and subdirectories)" for p in config.paths.allowed_paths
    )
    return f"""
CRITICAL SAFETY RULES FOR THE CHAT RELAY:

1. NEVER delete, remove, or overwrite files without EXPLICIT confirmation from the user.
   - If the user asks to delete something, ask them to confirm first.
   - This applies to: rm, trash, unlink, shred, or any file deletion

2. You can ONLY access files in these directories:
{paths_list}
   - REFUSE any file operations outside these paths

3. NEVER run dangerous commands like:
   - rm -rf (recursive force delete)
   - Any command that affects files outside allowed directories
   - Commands that could damage the system

4. For any destructive or irreversible action, ALWAYS ask for confirmation first.

5. Runtime/session files are stored here:
   - Session history for resume: {config.paths.session_file}
   - Runtime root: {config.paths.runtime_dir}
   - Temporary downloads: {config.paths.temp_dir}
   - If the user asks where sessions are, report this exact location.

You are running behind a chat relay, so the user cannot easily undo mistakes. Be extra careful!
"""
