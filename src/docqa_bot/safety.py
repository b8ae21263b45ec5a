"""
Pre-send guard against documents that try to rewrite the assistant's instructions.
"""
from __future__ import annotations

from typing import Iterable

from .config import DEFAULT_DENYLIST_PHRASES
from .errors import SafetyRejection


class ContentSafetyFilter:
    """Case-insensitive substring scan over a fixed, ordered denylist."""

    def __init__(self, phrases: Iterable[str] = DEFAULT_DENYLIST_PHRASES):
        self.phrases: tuple[str, ...] = tuple(
            phrase.lower() for phrase in (str(item or "").strip() for item in phrases) if phrase
        )

    def find_match(self, text: str) -> str | None:
        """Returns the first denylisted phrase contained in the text, or None."""
        lowered = str(text or "").lower()
        for phrase in self.phrases:
            if phrase in lowered:
                return phrase
        return None

    def ensure_safe(self, text: str):
        phrase = self.find_match(text)
        if phrase is not None:
            raise SafetyRejection(phrase)
