"""Model selection grammar.

Accepted forms (case and separators are ignored):

    opus 4.6 | claude 4.6 opus          -> claude / claude-opus-4-6
    sonnet 4.5 | claude 4.5 sonnet      -> claude / claude-sonnet-4-5
    claude                              -> claude / configured default model
    codex                               -> codex / configured model + effort
    codex <effort>                      -> codex / configured model, effort
    codex 5.3 <effort> | gpt-5.3-codex <effort> | codex5.3high
                                        -> codex / gpt-5.3-codex, effort
    anything else                       -> codex / literal model id

<effort> is one of minimal, low, medium, high, xhigh.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from agentrelay.config.schema import CODEX_EFFORTS
from agentrelay.errors import ModelSelectionError
from agentrelay.session.state import AssistantKind

USAGE = "Usage: /model <opus 4.6|sonnet 4.5|codex 5.3 high|...>"

CODEX_53_MODEL = "gpt-5.3-codex"

# compact alias -> model id (None means "configured default")
_CODEX_BASES: dict[str, str | None] = {
    "codex": None,
    "codex53": CODEX_53_MODEL,
    "gpt53codex": CODEX_53_MODEL,
}

_CLAUDE_ALIASES: dict[str, str] = {
    "claude46opus": "claude-opus-4-6",
    "opus46": "claude-opus-4-6",
    "claude45sonnet": "claude-sonnet-4-5",
    "sonnet45": "claude-sonnet-4-5",
}

_CLAUDE_DISPLAY: dict[str, str] = {
    "claudeopus46": "opus 4.6",
    "claudesonnet45": "sonnet 4.5",
}

_SEPARATORS = re.compile(r"[\s._-]+")
_COMPACT_PRESET = re.compile(
    r"^(codex53|gpt53codex|codex)(" + "|".join(CODEX_EFFORTS) + r")$"
)


def compact(value: str) -> str:
    """Lowercase and drop whitespace, dots, underscores and dashes."""
    return _SEPARATORS.sub("", value.lower())


def tokenize(selection: str) -> list[str]:
    """Split on whitespace, underscores and dashes; dots stay inside version numbers."""
    return [tok for tok in re.split(r"[\s_-]+", selection.lower().strip()) if tok]


@dataclass(frozen=True, slots=True)
class ModelSelection:
    """Parsed /model argument.

    model None means the configured default for the assistant; effort None
    means "keep whatever effort applies".
    """

    assistant: AssistantKind
    model: str | None = None
    effort: str | None = None


def _codex_preset(tokens: list[str], compacted: str) -> ModelSelection | None:
    if len(tokens) > 1 and tokens[-1] in CODEX_EFFORTS:
        base = compact("".join(tokens[:-1]))
        if base in _CODEX_BASES:
            return ModelSelection(AssistantKind.CODEX, _CODEX_BASES[base], tokens[-1])

    match = _COMPACT_PRESET.match(compacted)
    if match:
        return ModelSelection(AssistantKind.CODEX, _CODEX_BASES[match.group(1)], match.group(2))
    return None


def parse_selection(raw: str) -> ModelSelection:
    """Parse a free-text model selection.

    Raises:
        ModelSelectionError: On empty input or an unknown Claude model.
    """
    selection = raw.strip()
    if not selection:
        raise ModelSelectionError(USAGE)

    tokens = tokenize(selection)
    compacted = compact(selection)

    preset = _codex_preset(tokens, compacted)
    if preset:
        return preset

    if compacted in _CLAUDE_ALIASES:
        return ModelSelection(AssistantKind.CLAUDE, _CLAUDE_ALIASES[compacted])

    if compacted == "claude":
        return ModelSelection(AssistantKind.CLAUDE)
    if compacted == "codex":
        return ModelSelection(AssistantKind.CODEX)

    if selection.lower().startswith("claude"):
        raise ModelSelectionError("Claude models: 'opus 4.6' or 'sonnet 4.5'")

    # Lenient fallback: treat as a literal Codex model id
    return ModelSelection(AssistantKind.CODEX, selection)


def model_display(assistant: AssistantKind, model: str, effort: str) -> str:
    """Short human label, e.g. "opus 4.6" or "codex 5.3 high"."""
    if assistant is AssistantKind.CODEX:
        if compact(model) == "gpt53codex":
            return f"codex 5.3 {effort}"
        return f"{model} ({effort})"
    return _CLAUDE_DISPLAY.get(compact(model), model)
