"""Automatic compaction trigger policy."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Sequence

if TYPE_CHECKING:
    from context_monitor.compaction.compactor import SessionCompactor
    from context_monitor.compaction.models import CompactResult, Message
    from context_monitor.config import MonitorConfig
    from context_monitor.metrics.models import ContextMetrics

LOGGER = logging.getLogger(__name__)

MIN_MESSAGE_COUNT = 20
COOLDOWN_MS = 5 * 60 * 1000


class CompactionAction(str, Enum):
    NONE = "none"
    WARN = "warn"
    AUTO_COMPACT = "auto_compact"


@dataclass(frozen=True)
class CompactionDecision:
    action: CompactionAction
    reason: str

    @property
    def triggered(self) -> bool:
        return self.action is CompactionAction.AUTO_COMPACT


@dataclass
class TriggerRecord:
    """Last auto-compaction attempt for one conversation; 0 means never."""

    last_triggered_at_epoch_ms: int = 0


@dataclass
class CompactionOutcome:
    decision: CompactionDecision
    result: CompactResult | None = None

    @property
    def error(self) -> str | None:
        if self.result is None or self.result.success:
            return None
        return self.result.error


def decide(
    should_compact: bool,
    conversation_id: str | None,
    message_count: int,
    last_triggered_at_epoch_ms: int,
    now_epoch_ms: int,
    *,
    min_message_count: int = MIN_MESSAGE_COUNT,
    cooldown_ms: int = COOLDOWN_MS,
) -> CompactionDecision:
    """
    Decide between auto-compaction, a warning, or nothing.

    Auto-compaction requires all of: metrics ask for compaction, a live
    conversation, at least `min_message_count` messages, and the cooldown
    elapsed since the last attempt. When metrics ask for compaction but
    the conversation is unsuitable the user is warned instead. During the
    cooldown nothing happens.
    """
    if not should_compact:
        return CompactionDecision(CompactionAction.NONE, "context below threshold")
    if not conversation_id:
        return CompactionDecision(CompactionAction.WARN, "no active conversation")
    if message_count < min_message_count:
        return CompactionDecision(
            CompactionAction.WARN,
            f"only {message_count} messages (minimum {min_message_count})",
        )
    if (
        last_triggered_at_epoch_ms != 0
        and now_epoch_ms - last_triggered_at_epoch_ms < cooldown_ms
    ):
        remaining_s = (cooldown_ms - (now_epoch_ms - last_triggered_at_epoch_ms)) / 1000
        return CompactionDecision(
            CompactionAction.NONE, f"cooldown active ({remaining_s:.0f}s remaining)"
        )
    return CompactionDecision(CompactionAction.AUTO_COMPACT, "threshold reached")


class CompactionPolicy:
    """Tracks trigger records per conversation and runs auto-compaction.

    The record is stamped once an attempt has run, whether or not the
    summarizer succeeded, so a failing backend is retried only after the
    cooldown.
    """

    def __init__(
        self,
        compactor: SessionCompactor,
        min_message_count: int = MIN_MESSAGE_COUNT,
        cooldown_seconds: float = COOLDOWN_MS / 1000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.compactor = compactor
        self.min_message_count = min_message_count
        self.cooldown_ms = int(cooldown_seconds * 1000)
        self._clock = clock
        self._records: dict[str, TriggerRecord] = {}
        self._in_flight: set[str] = set()
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: MonitorConfig, compactor: SessionCompactor) -> CompactionPolicy:
        return cls(
            compactor,
            min_message_count=config.min_message_count,
            cooldown_seconds=config.compact_cooldown_seconds,
        )

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def last_triggered_at(self, conversation_id: str | None) -> int:
        """Epoch ms of the last attempt for `conversation_id`, 0 if never."""
        with self._lock:
            record = self._records.get(conversation_id)
        return record.last_triggered_at_epoch_ms if record else 0

    def evaluate(
        self,
        metrics: ContextMetrics,
        conversation_id: str | None,
        message_count: int,
    ) -> CompactionDecision:
        """Decide without side effects."""
        return decide(
            metrics.should_compact,
            conversation_id,
            message_count,
            self.last_triggered_at(conversation_id),
            self._now_ms(),
            min_message_count=self.min_message_count,
            cooldown_ms=self.cooldown_ms,
        )

    def maybe_compact(
        self,
        metrics: ContextMetrics,
        conversation_id: str | None,
        messages: Sequence[Message],
    ) -> CompactionOutcome:
        """
        Evaluate and, when triggered, compact `messages`.

        Summarizer failures come back in `CompactionOutcome.error`.
        """
        with self._lock:
            if conversation_id in self._in_flight:
                return CompactionOutcome(
                    CompactionDecision(CompactionAction.NONE, "compaction already running")
                )
            last = self._records.get(conversation_id, TriggerRecord()).last_triggered_at_epoch_ms
            decision = decide(
                metrics.should_compact,
                conversation_id,
                len(messages),
                last,
                self._now_ms(),
                min_message_count=self.min_message_count,
                cooldown_ms=self.cooldown_ms,
            )
            if not decision.triggered:
                return CompactionOutcome(decision)
            self._in_flight.add(conversation_id)

        LOGGER.info(
            "Auto-compacting conversation %s at %.1f%% (%d messages)",
            conversation_id,
            metrics.percentage,
            len(messages),
        )
        try:
            result = self.compactor.compact(messages)
        finally:
            with self._lock:
                self._in_flight.discard(conversation_id)
                self._records[conversation_id] = TriggerRecord(self._now_ms())

        if not result.success:
            LOGGER.warning("Auto-compaction of %s failed: %s", conversation_id, result.error)
        return CompactionOutcome(decision, result)
