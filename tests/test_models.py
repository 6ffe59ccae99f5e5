"""Tests for the model selection grammar.

Tests coverage for:
- src/agentrelay/session/models.py
"""

from __future__ import annotations

import pytest

from agentrelay.errors import ModelSelectionError
from agentrelay.session.models import (
    USAGE,
    ModelSelection,
    compact,
    model_display,
    parse_selection,
    tokenize,
)
from agentrelay.session.state import AssistantKind

CLAUDE = AssistantKind.CLAUDE
CODEX = AssistantKind.CODEX


class TestNormalization:
    def test_compact(self):
        assert compact("GPT-5.3 codex_") == "gpt53codex"

    def test_tokenize_keeps_version_dots(self):
        assert tokenize("  Codex 5.3_HIGH ") == ["codex", "5.3", "high"]


class TestParseSelection:
    """Tests for parse_selection()."""

    @pytest.mark.parametrize(
        "raw",
        ["opus 4.6", "Opus-4.6", "claude 4.6 opus", "claude-4-6-opus", "opus46"],
    )
    def test_opus_aliases(self, raw):
        assert parse_selection(raw) == ModelSelection(CLAUDE, "claude-opus-4-6")

    @pytest.mark.parametrize("raw", ["sonnet 4.5", "claude 4.5 sonnet", "SONNET_4_5"])
    def test_sonnet_aliases(self, raw):
        assert parse_selection(raw) == ModelSelection(CLAUDE, "claude-sonnet-4-5")

    def test_bare_claude_uses_default_model(self):
        assert parse_selection("claude") == ModelSelection(CLAUDE)

    def test_bare_codex_uses_defaults(self):
        assert parse_selection("codex") == ModelSelection(CODEX)

    def test_codex_with_effort(self):
        assert parse_selection("codex high") == ModelSelection(CODEX, None, "high")

    @pytest.mark.parametrize(
        "raw",
        ["codex 5.3 xhigh", "gpt-5.3-codex xhigh", "codex5.3xhigh", "Codex 5.3 XHIGH"],
    )
    def test_codex_53_presets(self, raw):
        assert parse_selection(raw) == ModelSelection(CODEX, "gpt-5.3-codex", "xhigh")

    def test_compact_codex_effort(self):
        assert parse_selection("codexlow") == ModelSelection(CODEX, None, "low")

    def test_unknown_claude_model_is_rejected(self):
        with pytest.raises(ModelSelectionError):
            parse_selection("claude haiku 9")

    def test_empty_selection_shows_usage(self):
        with pytest.raises(ModelSelectionError) as exc_info:
            parse_selection("   ")
        assert str(exc_info.value) == USAGE

    def test_anything_else_is_literal_codex_model(self):
        """Test the lenient fallback for unknown model ids."""
        assert parse_selection("gpt-5.2") == ModelSelection(CODEX, "gpt-5.2")

    def test_unknown_effort_word_is_literal_model(self):
        assert parse_selection("codex turbo") == ModelSelection(CODEX, "codex turbo")


class TestModelDisplay:
    def test_claude_known_models(self):
        assert model_display(CLAUDE, "claude-opus-4-6", "high") == "opus 4.6"
        assert model_display(CLAUDE, "claude-sonnet-4-5", "high") == "sonnet 4.5"

    def test_claude_unknown_model(self):
        assert model_display(CLAUDE, "claude-haiku-9", "high") == "claude-haiku-9"

    def test_codex_53(self):
        assert model_display(CODEX, "gpt-5.3-codex", "high") == "codex 5.3 high"

    def test_codex_other_model(self):
        assert model_display(CODEX, "gpt-5.2", "low") == "gpt-5.2 (low)"
