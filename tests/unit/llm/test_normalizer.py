"""Model id normalization tests."""

import pytest

from kaap.llm import normalize_model_id, normalize_stored_model_id


class TestNormalizeModelId:
    """Tests for normalize_model_id."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("GPT-4o", "gpt-4o"),
            ("  claude-sonnet-4-6  ", "claude-sonnet-4-6"),
            ("models/gemini-flash-latest", "gemini-flash-latest"),
            ("models/models/gemini-pro-latest", "gemini-pro-latest"),
            ("claude_3_haiku_20240307", "claude-3-haiku-20240307"),
            ("deepseek   chat", "deepseek-chat"),
            ("gpt--4o", "gpt-4o"),
        ],
    )
    def test_canonical_forms(self, raw: str, expected: str) -> None:
        """Case, prefixes and separators are canonicalized."""
        assert normalize_model_id(raw) == expected

    def test_restores_dotted_gemini_version(self) -> None:
        """Flattened Gemini 1.5 versions regain their dot."""
        result = normalize_model_id("models/Gemini_1-5-Pro")

        assert "gemini-1.5" in result
        assert result == "gemini-1.5-pro"

    @pytest.mark.parametrize(
        "raw",
        ["GPT-4o", "models/Gemini_1-5-Pro", "claude_3__haiku", " deepseek reasoner ", ""],
    )
    def test_idempotent(self, raw: str) -> None:
        """Normalizing twice equals normalizing once."""
        once = normalize_model_id(raw)

        assert normalize_model_id(once) == once

    def test_empty_stays_empty(self) -> None:
        """Blank input normalizes to an empty id."""
        assert normalize_model_id("   ") == ""


class TestNormalizeStoredModelId:
    """Tests for the deprecated-id rewrite."""

    def test_rewrites_deprecated_ids(self) -> None:
        """Deprecated Gemini ids map to their successors."""
        assert normalize_stored_model_id("gemini-1.5-pro") == "gemini-pro-latest"
        assert normalize_stored_model_id("gemini-1.5-flash") == "gemini-flash-latest"

    def test_leaves_current_ids(self) -> None:
        """Current ids pass through unchanged."""
        assert normalize_stored_model_id("gpt-4o") == "gpt-4o"
