"""Heuristic token counting for compaction estimates."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from context_monitor.compaction.models import Message

# Overhead per message for role/formatting
MESSAGE_OVERHEAD = 4


class TokenCounter:
    """Character-ratio token estimates.

    Good enough for before/after compaction estimates; the authoritative
    context size comes from the usage recorded in the session log.
    """

    def __init__(self, chars_per_token: float = 4.0) -> None:
        if chars_per_token <= 0:
            raise ValueError("chars_per_token must be positive")
        self._chars_per_token = chars_per_token

    def count(self, text: str) -> int:
        """Estimate tokens in `text`; never less than 1."""
        return max(1, int(len(text) / self._chars_per_token))

    def count_messages(self, messages: Iterable[Message]) -> int:
        total = 0
        for msg in messages:
            if msg.content:
                total += self.count(msg.content)
            total += MESSAGE_OVERHEAD
        return total
