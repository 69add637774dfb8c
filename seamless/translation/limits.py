"""Word-limit policy shared by every backend.

The presentation layer uses it to truncate the input field live and to colour
the word counter. The orchestrator itself never truncates.
"""

from __future__ import annotations

from dataclasses import dataclass

COUNTER_COLOR_OK = "#757575"
COUNTER_COLOR_NEAR_LIMIT = "#D32F2F"

# Counter turns red this many words before the hard limit.
NEAR_LIMIT_MARGIN = 10


@dataclass(frozen=True)
class TextLimit:
    """Word budget for a backend."""

    word_limit: int

    def word_count(self, text: str) -> int:
        return len(text.split())

    def limit_text(self, text: str) -> str:
        """Keep the first ``word_limit`` words of ``text``.

        Text within the budget is returned untouched (including its original
        whitespace); truncated text is re-joined with single spaces.
        """
        words = text.split()
        if len(words) > self.word_limit:
            return " ".join(words[: self.word_limit])
        return text

    def remaining_context(self, text: str) -> str:
        return f"{self.word_limit - self.word_count(text)} words remaining"

    def counter_color(self, text: str) -> str:
        if self.word_count(text) > self.word_limit - NEAR_LIMIT_MARGIN:
            return COUNTER_COLOR_NEAR_LIMIT
        return COUNTER_COLOR_OK


WEB_TEXT_LIMIT = TextLimit(word_limit=500)
LOCAL_TEXT_LIMIT = TextLimit(word_limit=180)
