"""Tests for the character-based token estimator."""

import pytest

from helpai.app.core.tokenizer import (
    DEFAULT_VISION_TOKEN_SURCHARGE,
    build_token_cost,
    build_vision_cost,
    estimate_text_tokens,
)


class TestEstimateTextTokens:
    """Test estimate_text_tokens function."""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("", 0),
            (None, 0),
            ("a", 1),
            ("abcd", 1),
            ("abcde", 2),
            ("x" * 400, 100),
        ],
    )
    def test_ceiling_of_quarter_length(self, text, expected):
        assert estimate_text_tokens(text) == expected

    def test_counts_characters_not_bytes(self):
        """Accented text is counted per character."""
        assert estimate_text_tokens("ação") == 1


class TestBuildTokenCost:
    """Test estimates for whole completions."""

    def test_prompt_plus_output_budget(self):
        """400-char system + 800-char user + 480 output tokens."""
        assert build_token_cost("s" * 400, "u" * 800, 480) == 780

    def test_missing_parts_count_as_zero(self):
        assert build_token_cost(None, None, None) == 0
        assert build_token_cost(None, "abcd", 0) == 1

    def test_invalid_max_tokens_ignored(self):
        assert build_token_cost("abcd", "abcd", "lots") == 2

    def test_vision_adds_surcharge(self):
        text_cost = build_token_cost("sys", "describe", 480)
        assert build_vision_cost("sys", "describe", 480) == text_cost + DEFAULT_VISION_TOKEN_SURCHARGE

    def test_vision_custom_surcharge(self):
        assert build_vision_cost(None, None, 100, surcharge=50) == 150
