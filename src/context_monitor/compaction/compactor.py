"""Session compaction: summarize the middle of a conversation."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Sequence

from context_monitor.compaction.models import CompactResult, Message
from context_monitor.compaction.selection import analyze_message, select_messages_to_keep
from context_monitor.compaction.token_counter import TokenCounter
from context_monitor.exceptions import SummarizerError

if TYPE_CHECKING:
    from context_monitor.compaction.summarizer import Summarizer
    from context_monitor.config import MonitorConfig

LOGGER = logging.getLogger(__name__)


class SessionCompactor:
    """
    Replaces the unimportant middle of a conversation with a summary.

    Result structure:
    ┌──────────────────────────────────────────────┐
    │ initial messages (project context)           │
    ├──────────────────────────────────────────────┤
    │ summary of medium/low middle messages        │
    │ critical/high middle messages, verbatim      │
    ├──────────────────────────────────────────────┤
    │ recent messages (current work)               │
    └──────────────────────────────────────────────┘

    Importance:
    - critical: error markers together with file-change markers
    - high: decisions, or assistant messages that change files
    - medium: other file/error mentions, and all user messages
    - low: everything else
    """

    def __init__(
        self,
        summarizer: Summarizer,
        token_counter: TokenCounter | None = None,
        min_message_count: int = 20,
        keep_initial_count: int = 3,
        keep_recent_count: int = 10,
    ) -> None:
        """
        Initialize compactor.

        Args:
            summarizer: Backend producing the summary text.
            token_counter: Estimator for before/after token counts.
            min_message_count: Refuse to compact shorter conversations.
            keep_initial_count: Leading messages always kept verbatim.
            keep_recent_count: Trailing messages always kept verbatim.
        """
        self.summarizer = summarizer
        self.counter = token_counter or TokenCounter()
        self.min_message_count = min_message_count
        self.keep_initial_count = keep_initial_count
        self.keep_recent_count = keep_recent_count

    @classmethod
    def from_config(cls, config: MonitorConfig, summarizer: Summarizer) -> SessionCompactor:
        return cls(
            summarizer=summarizer,
            min_message_count=config.min_message_count,
            keep_initial_count=config.keep_initial_count,
            keep_recent_count=config.keep_recent_count,
        )

    def compact(self, messages: Sequence[Message]) -> CompactResult:
        """
        Summarize `messages`. Never raises for summarizer failures.

        Returns:
            CompactResult; `success` is False with `error` set on failure.
        """
        total = len(messages)
        if total < self.min_message_count:
            return CompactResult.failure(
                f"Not enough messages to compact (minimum {self.min_message_count})",
                total,
            )

        tokens_before = self.counter.count_messages(messages)
        analyses = [analyze_message(m) for m in messages]
        selection = select_messages_to_keep(
            analyses, self.keep_initial_count, self.keep_recent_count
        )

        if not selection.to_summarize:
            return CompactResult.failure("No messages to summarize after selection", total)

        LOGGER.info(
            "Compacting %d messages: keeping %d initial, %d important, %d recent; summarizing %d",
            total,
            len(selection.initial_messages),
            len(selection.important_messages),
            len(selection.recent_messages),
            len(selection.to_summarize),
        )

        try:
            summary = self.summarizer.summarize(
                selection.to_summarize, selection.extracted_context
            )
        except SummarizerError as exc:
            LOGGER.warning("Compaction failed: %s", exc)
            return CompactResult.failure(str(exc), total)

        kept = selection.kept_messages
        tokens_after = self.counter.count(summary) + self.counter.count_messages(kept)

        result = CompactResult(
            success=True,
            summary=summary,
            original_message_count=total,
            kept_message_count=len(kept),
            summarized_message_count=len(selection.to_summarize),
            tokens_before_estimate=tokens_before,
            tokens_after_estimate=tokens_after,
            preserved_messages=kept,
        )
        LOGGER.info(
            "Compaction done: %d -> %d tokens (%.0f%% saved)",
            tokens_before,
            tokens_after,
            result.saved_percent,
        )
        return result
