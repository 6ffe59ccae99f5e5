"""Configuration management for agentrelay.

Layered YAML configuration with:
- User-level config (~/.config/agentrelay/ or ~/.agentrelay/)
- Project-level config (<working_dir>/.agentrelay/)
- Environment variable overrides (highest priority)

Example usage:
    from agentrelay.config import load_config

    config = load_config(working_dir="/path/to/project")
    print(config.codex.model)
"""

from agentrelay.config.loader import (
    get_config,
    load_config,
    reset_config,
)
from agentrelay.config.schema import (
    AskUserConfig,
    ClaudeConfig,
    CodexConfig,
    LoggingConfig,
    PathsConfig,
    RelayConfig,
    SafetyConfig,
    SessionConfig,
    StreamingConfig,
    build_safety_prompt,
)

__all__ = [
    "AskUserConfig",
    "ClaudeConfig",
    "CodexConfig",
    "LoggingConfig",
    "PathsConfig",
    "RelayConfig",
    "SafetyConfig",
    "SessionConfig",
    "StreamingConfig",
    "build_safety_prompt",
    "get_config",
    "load_config",
    "reset_config",
]
