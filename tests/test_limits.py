"""Tests for TextLimit word counting and truncation."""

import pytest

from seamless.translation.limits import (
    COUNTER_COLOR_NEAR_LIMIT,
    COUNTER_COLOR_OK,
    LOCAL_TEXT_LIMIT,
    WEB_TEXT_LIMIT,
    TextLimit,
)


class TestTextLimit:
    def test_backend_budgets(self):
        assert WEB_TEXT_LIMIT.word_limit == 500
        assert LOCAL_TEXT_LIMIT.word_limit == 180

    def test_word_count_splits_on_any_whitespace(self):
        assert TextLimit(10).word_count("  one\ttwo\n three  ") == 3
        assert TextLimit(10).word_count("") == 0

    def test_text_within_limit_is_untouched(self):
        text = "keep   this\nspacing"
        assert TextLimit(3).limit_text(text) == text

    def test_text_over_limit_keeps_first_words(self):
        assert TextLimit(3).limit_text("one  two\nthree four five") == "one two three"

    def test_remaining_context(self):
        assert TextLimit(5).remaining_context("a b") == "3 words remaining"

    @pytest.mark.parametrize(
        "words,color",
        [
            (0, COUNTER_COLOR_OK),
            (10, COUNTER_COLOR_OK),
            (11, COUNTER_COLOR_NEAR_LIMIT),
            (20, COUNTER_COLOR_NEAR_LIMIT),
        ],
    )
    def test_counter_turns_red_near_limit(self, words, color):
        assert TextLimit(20).counter_color(" ".join(["w"] * words)) == color
