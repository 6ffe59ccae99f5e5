"""Configuration file loading and caching.

Handles:
- YAML file parsing
- Environment variable overrides (the original bot's variable names)
- Deep merge of user, project and environment layers
- Conversion from dict to typed RelayConfig and path finalization
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml

from agentrelay.config.paths import expand_home, get_config_paths, resolve_from
from agentrelay.config.schema import (
    CLAUDE_EFFORTS,
    CODEX_APPROVAL_POLICIES,
    CODEX_EFFORTS,
    CODEX_SANDBOX_MODES,
    CODEX_WEB_SEARCH_MODES,
    AskUserConfig,
    ClaudeConfig,
    CodexConfig,
    LoggingConfig,
    PathsConfig,
    RelayConfig,
    SafetyConfig,
    SessionConfig,
    StreamingConfig,
)

# Module logger (may not be configured yet at import time)
_log = logging.getLogger("agentrelay.config")

_cached_config: RelayConfig | None = None


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file, returning empty dict if not found or invalid."""
    if not path.exists():
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
            return data if isinstance(data, dict) else {}
    except yaml.YAMLError as e:
        _log.warning("Invalid YAML in %s: %s", path, e)
        return {}
    except OSError as e:
        _log.warning("Error reading %s: %s", path, e)
        return {}


def merge_layers(*layers: dict[str, Any]) -> dict[str, Any]:
    """Deep-merge config layers; later layers win.

    Nested dicts merge key by key, lists and scalars are replaced, and None
    never overrides an existing value.
    """
    result: dict[str, Any] = {}
    for layer in layers:
        result = _merge_two(result, layer or {})
    return result


def _merge_two(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if value is None:
            continue
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _merge_two(current, value)
        else:
            merged[key] = value
    return merged


def _as_bool(raw: str) -> bool:
    return raw.strip().lower() == "true"


def _as_int(raw: str) -> int | None:
    try:
        return int(raw.strip())
    except ValueError:
        return None


def _as_list(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


def _as_str(raw: str) -> str:
    return raw.strip()


def _as_lower(raw: str) -> str:
    return raw.strip().lower()


# (environment variable, config path, converter)
_ENV_OVERRIDES: list[tuple[str, tuple[str, ...], Callable[[str], Any]]] = [
    ("AI_ASSISTANT", ("assistant",), _as_lower),
    ("CLAUDE_WORKING_DIR", ("paths", "working_dir"), _as_str),
    ("AI_WORKING_DIR", ("paths", "working_dir"), _as_str),
    ("CLAUDE_RUNTIME_DIR", ("paths", "runtime_dir"), _as_str),
    ("AI_RUNTIME_DIR", ("paths", "runtime_dir"), _as_str),
    ("AI_SESSION_FILE", ("paths", "session_file"), _as_str),
    ("AI_TEMP_DIR", ("paths", "temp_dir"), _as_str),
    ("ALLOWED_PATHS", ("paths", "allowed_paths"), _as_list),
    ("ALLOWED_PATHS_EXTRA", ("paths", "allowed_paths_extra"), _as_list),
    ("ALLOWED_PATHS_REMOVE", ("paths", "allowed_paths_remove"), _as_list),
    ("CLAUDE_MODEL", ("claude", "model"), _as_str),
    ("CLAUDE_REASONING_EFFORT", ("claude", "reasoning_effort"), _as_lower),
    ("CLAUDE_ENABLE_CHROME", ("claude", "enable_chrome"), _as_bool),
    ("CLAUDE_CLI_PATH", ("claude", "cli_path"), _as_str),
    ("THINKING_KEYWORDS", ("claude", "thinking_keywords"), _as_list),
    ("THINKING_DEEP_KEYWORDS", ("claude", "thinking_deep_keywords"), _as_list),
    ("CODEX_MODEL", ("codex", "model"), _as_str),
    ("CODEX_REASONING_EFFORT", ("codex", "reasoning_effort"), _as_lower),
    ("CODEX_SANDBOX_MODE", ("codex", "sandbox_mode"), _as_lower),
    ("CODEX_APPROVAL_POLICY", ("codex", "approval_policy"), _as_lower),
    ("CODEX_NETWORK_ACCESS_ENABLED", ("codex", "network_access"), _as_bool),
    ("CODEX_WEB_SEARCH_MODE", ("codex", "web_search"), _as_lower),
    ("STREAMING_THROTTLE_MS", ("streaming", "throttle_ms"), _as_int),
    ("STREAMING_SYNTHETIC_FALLBACK_MIN_CHARS", ("streaming", "synthetic_min_chars"), _as_int),
    ("STREAMING_SYNTHETIC_STEP_CHARS", ("streaming", "synthetic_step_chars"), _as_int),
    ("STREAMING_SYNTHETIC_STEP_DELAY_MS", ("streaming", "synthetic_step_delay_ms"), _as_int),
    ("STREAMING_DEBUG", ("streaming", "debug"), _as_bool),
    ("AGENTRELAY_LOG", ("logging", "file"), _as_str),
]


def env_overrides(environ: dict[str, str] | None = None) -> dict[str, Any]:
    """Build a config layer from environment variables.

    Later entries in the table win, so AI_* names take precedence over the
    legacy CLAUDE_* directory names.
    """
    env = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}
    for name, path, convert in _ENV_OVERRIDES:
        raw = env.get(name)
        if not raw:
            continue
        value = convert(raw)
        if value is None or value == "":
            continue
        section = overrides
        for key in path[:-1]:
            section = section.setdefault(key, {})
        section[path[-1]] = value
    return overrides


def _choice(value: Any, allowed: tuple[str, ...], default: str, name: str) -> str:
    if value is None:
        return default
    normalized = str(value).strip().lower()
    if normalized in allowed:
        return normalized
    _log.warning("Invalid %s '%s', using '%s'", name, value, default)
    return default


def _str_list(value: Any, default: list[str]) -> list[str]:
    if not isinstance(value, list):
        return list(default)
    return [str(v) for v in value if isinstance(v, (str, int, float))]


def dict_to_config(data: dict[str, Any]) -> RelayConfig:
    """Convert a merged dict to a typed RelayConfig (paths not yet resolved)."""
    claude_defaults = ClaudeConfig()
    claude_data = data.get("claude", {}) or {}
    claude = ClaudeConfig(
        model=str(claude_data.get("model") or claude_defaults.model),
        reasoning_effort=_choice(
            claude_data.get("reasoning_effort"),
            CLAUDE_EFFORTS,
            claude_defaults.reasoning_effort,
            "claude.reasoning_effort",
        ),
        enable_chrome=bool(claude_data.get("enable_chrome", False)),
        cli_path=claude_data.get("cli_path"),
        thinking_keywords=[
            k.strip().lower()
            for k in _str_list(claude_data.get("thinking_keywords"), claude_defaults.thinking_keywords)
        ],
        thinking_deep_keywords=[
            k.strip().lower()
            for k in _str_list(
                claude_data.get("thinking_deep_keywords"), claude_defaults.thinking_deep_keywords
            )
        ],
    )

    codex_defaults = CodexConfig()
    codex_data = data.get("codex", {}) or {}
    codex = CodexConfig(
        model=str(codex_data.get("model") or codex_defaults.model),
        reasoning_effort=_choice(
            codex_data.get("reasoning_effort"),
            CODEX_EFFORTS,
            codex_defaults.reasoning_effort,
            "codex.reasoning_effort",
        ),
        sandbox_mode=_choice(
            codex_data.get("sandbox_mode"),
            CODEX_SANDBOX_MODES,
            codex_defaults.sandbox_mode,
            "codex.sandbox_mode",
        ),
        approval_policy=_choice(
            codex_data.get("approval_policy"),
            CODEX_APPROVAL_POLICIES,
            codex_defaults.approval_policy,
            "codex.approval_policy",
        ),
        network_access=bool(codex_data.get("network_access", True)),
        web_search=_choice(
            codex_data.get("web_search"),
            CODEX_WEB_SEARCH_MODES,
            codex_defaults.web_search,
            "codex.web_search",
        ),
        binary=str(codex_data.get("binary") or codex_defaults.binary),
    )

    paths_data = data.get("paths", {}) or {}
    paths = PathsConfig(
        working_dir=str(paths_data.get("working_dir") or ""),
        runtime_dir=str(paths_data.get("runtime_dir") or ""),
        temp_dir=str(paths_data.get("temp_dir") or ""),
        session_file=str(paths_data.get("session_file") or ""),
        allowed_paths=_str_list(paths_data.get("allowed_paths"), []),
        allowed_paths_extra=_str_list(paths_data.get("allowed_paths_extra"), []),
        allowed_paths_remove=_str_list(paths_data.get("allowed_paths_remove"), []),
    )

    safety_defaults = SafetyConfig()
    safety_data = data.get("safety", {}) or {}
    safety = SafetyConfig(
        blocked_patterns=_str_list(
            safety_data.get("blocked_patterns"), safety_defaults.blocked_patterns
        ),
        temp_paths=_str_list(safety_data.get("temp_paths"), safety_defaults.temp_paths),
        credentials_dirs=_str_list(
            safety_data.get("credentials_dirs"), safety_defaults.credentials_dirs
        ),
    )

    streaming_defaults = StreamingConfig()
    streaming_data = data.get("streaming", {}) or {}
    streaming = StreamingConfig(
        throttle_ms=int(streaming_data.get("throttle_ms", streaming_defaults.throttle_ms)),
        synthetic_min_chars=int(
            streaming_data.get("synthetic_min_chars", streaming_defaults.synthetic_min_chars)
        ),
        synthetic_step_chars=int(
            streaming_data.get("synthetic_step_chars", streaming_defaults.synthetic_step_chars)
        ),
        synthetic_step_delay_ms=int(
            streaming_data.get(
                "synthetic_step_delay_ms", streaming_defaults.synthetic_step_delay_ms
            )
        ),
        debug=bool(streaming_data.get("debug", False)),
    )

    session_data = data.get("session", {}) or {}
    session = SessionConfig(
        max_history=int(session_data.get("max_history", 5)),
        query_timeout=float(session_data.get("query_timeout", 180.0)),
    )

    ask_defaults = AskUserConfig()
    ask_data = data.get("ask_user", {}) or {}
    ask_user = AskUserConfig(
        directory=str(ask_data.get("directory") or ask_defaults.directory),
        attempts=int(ask_data.get("attempts", ask_defaults.attempts)),
        initial_delay_ms=int(ask_data.get("initial_delay_ms", ask_defaults.initial_delay_ms)),
        retry_delay_ms=int(ask_data.get("retry_delay_ms", ask_defaults.retry_delay_ms)),
    )

    log_data = data.get("logging", {}) or {}
    logging_config = LoggingConfig(
        level=log_data.get("level"),
        verbose=log_data.get("verbose"),
        file=log_data.get("file"),
    )

    assistant = _choice(data.get("assistant"), ("claude", "codex"), "claude", "assistant")

    known_keys = {
        "assistant", "claude", "codex", "paths", "safety",
        "streaming", "session", "ask_user", "logging",
    }
    extra = {k: v for k, v in data.items() if k not in known_keys}

    return RelayConfig(
        assistant=assistant,
        claude=claude,
        codex=codex,
        paths=paths,
        safety=safety,
        streaming=streaming,
        session=session,
        ask_user=ask_user,
        logging=logging_config,
        extra=extra,
    )


def _dedupe(paths: list[str]) -> list[str]:
    return list(dict.fromkeys(paths))


def finalize_paths(config: RelayConfig) -> RelayConfig:
    """Resolve every path setting to an absolute path and build the allowlist.

    The working directory is always part of the allowlist. The runtime
    directory is always treated as a temp path.
    """
    paths = config.paths
    home = str(Path.home())
    working_dir = os.path.normpath(expand_home(paths.working_dir or home))
    paths.working_dir = working_dir

    paths.runtime_dir = resolve_from(working_dir, paths.runtime_dir or "sessions")
    paths.temp_dir = resolve_from(working_dir, paths.temp_dir or f"{paths.runtime_dir}/relay")
    paths.session_file = resolve_from(
        working_dir, paths.session_file or f"{paths.runtime_dir}/agentrelay-sessions.yaml"
    )

    if paths.allowed_paths:
        base = [resolve_from(working_dir, p) for p in paths.allowed_paths]
    else:
        base = [
            working_dir,
            resolve_from(working_dir, "~/.claude"),
            resolve_from(working_dir, "~/.codex"),
        ]
    extra = [resolve_from(working_dir, p) for p in paths.allowed_paths_extra]
    remove = {resolve_from(working_dir, p) for p in paths.allowed_paths_remove}
    merged = [p for p in _dedupe(base + extra) if p not in remove]
    if working_dir not in merged:
        merged.insert(0, working_dir)
    paths.allowed_paths = merged

    runtime_prefix = paths.runtime_dir.rstrip("/") + "/"
    temp_paths = [runtime_prefix] + [p for p in config.safety.temp_paths if p != runtime_prefix]
    config.safety.temp_paths = temp_paths
    config.safety.credentials_dirs = [
        resolve_from(home, p) for p in config.safety.credentials_dirs
    ]
    return config


def load_config(
    working_dir: str | None = None,
    reload: bool = False,
    environ: dict[str, str] | None = None,
) -> RelayConfig:
    """Load and merge config from all sources.

    Priority order (highest to lowest):
    1. Environment variables
    2. Project config (<working_dir>/.agentrelay/config.yaml)
    3. User config

    Args:
        working_dir: Project directory for project-level config. Falls back
            to AI_WORKING_DIR / CLAUDE_WORKING_DIR.
        reload: Force reload even if cached.
        environ: Environment mapping (defaults to os.environ).
    """
    global _cached_config

    if _cached_config is not None and not reload and working_dir is None and environ is None:
        return _cached_config

    env_layer = env_overrides(environ)
    project_root = working_dir or env_layer.get("paths", {}).get("working_dir")

    layers: list[dict[str, Any]] = []
    for path in get_config_paths(project_root):
        data = load_yaml_file(path)
        if data:
            _log.debug("Loaded config from %s", path)
            layers.append(data)
    layers.append(env_layer)
    if working_dir:
        layers.append({"paths": {"working_dir": working_dir}})

    config = finalize_paths(dict_to_config(merge_layers(*layers)))

    if working_dir is None and environ is None:
        _cached_config = config
    return config


def get_config() -> RelayConfig:
    """Get the cached global config, loading it on first use."""
    if _cached_config is None:
        return load_config()
    return _cached_config


def reset_config() -> None:
    """Reset cached config (used by tests)."""
    global _cached_config
    _cached_config = None
