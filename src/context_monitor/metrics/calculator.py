"""Token metric calculation from conversation logs."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Iterable, Sequence

from context_monitor.config import MonitorConfig, PlanTier
from context_monitor.logs.events import LogEvent, iter_events
from context_monitor.metrics.models import (
    ContextMetrics,
    UsageWindowMetrics,
    severity_for,
    should_compact,
)

LOGGER = logging.getLogger(__name__)

COMPACT_COMMAND = "/compact"
COMPACT_COMPLETE_KIND = "compact_complete"

# /compact verification: compare assistant context just before and after the command
COMPACT_LOOKBEHIND = 5
COMPACT_LOOKAHEAD = 10
COMPACT_MIN_REDUCTION = 0.05
COMPACT_RECENT_GRACE = timedelta(minutes=10)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def detect_plan_limit(
    observed_tokens: int, tiers: Sequence[PlanTier], default_limit: int
) -> int:
    """Best-effort guess of the plan ceiling from observed usage.

    Usage above a tier's breakpoint proves the plan is at least that tier.
    There is no authoritative source for this, so treat it as approximate.
    """
    for tier in sorted(tiers, key=lambda t: t.above, reverse=True):
        if observed_tokens > tier.above:
            return tier.limit
    return default_limit


def estimate_minutes_remaining(
    current: int, limit: int, burn_rate_per_hour: float
) -> int | None:
    """Minutes until `limit` at the current burn rate; None if not burning."""
    if burn_rate_per_hour <= 0:
        return None
    hours_left = (limit - current) / burn_rate_per_hour
    return max(0, math.floor(hours_left * 60))


@dataclass
class _LogAnalysis:
    session_start: datetime | None = None
    last_compact: datetime | None = None
    current_context_tokens: int = 0
    tokens_at_index: dict[int, int] = field(default_factory=dict)


class MetricCalculator:
    """Recomputes metrics from the whole log on every call."""

    def __init__(
        self,
        config: MonitorConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config = config or MonitorConfig()
        self._clock = clock

    def calculate_context(self, log_path: Path | str) -> ContextMetrics:
        """Context-window usage of the conversation in `log_path`.

        Unreadable logs yield empty metrics rather than raising.
        """
        try:
            lines = read_log_lines(log_path)
        except OSError as exc:
            LOGGER.warning("Cannot read %s for context metrics: %s", log_path, exc)
            return ContextMetrics.empty(self.config.context_limit)

        analysis = self._analyze(iter_events(lines))
        return self.build_context_metrics(
            analysis.current_context_tokens,
            last_compact=analysis.last_compact,
            session_start=analysis.session_start,
        )

    def build_context_metrics(
        self,
        raw_tokens: int,
        *,
        last_compact: datetime | None = None,
        session_start: datetime | None = None,
    ) -> ContextMetrics:
        """Derive context metrics from the latest raw context token count."""
        cfg = self.config
        adjusted = math.floor(raw_tokens * cfg.system_overhead)
        percentage = adjusted / cfg.context_limit * 100
        return ContextMetrics(
            current_tokens=adjusted,
            limit_tokens=cfg.context_limit,
            percentage=percentage,
            prunable_tokens_estimate=math.floor(adjusted * cfg.prunable_ratio),
            should_compact=should_compact(percentage, cfg.compact_threshold),
            last_compact_timestamp=last_compact,
            session_start=session_start,
            severity=severity_for(
                percentage, cfg.compact_threshold, cfg.warning_threshold
            ),
        )

    def calculate_usage_window(
        self, log_path: Path | str, window_hours: float | None = None
    ) -> UsageWindowMetrics:
        """Tokens consumed in the trailing window, burn rate and time left."""
        cfg = self.config
        hours = window_hours if window_hours is not None else cfg.usage_window_hours
        try:
            lines = read_log_lines(log_path)
        except OSError as exc:
            LOGGER.warning("Cannot read %s for usage metrics: %s", log_path, exc)
            return UsageWindowMetrics.empty(cfg.default_plan_limit)
        return self.usage_window_from_events(iter_events(lines), hours)

    def usage_window_from_events(
        self, events: Iterable[LogEvent], window_hours: float
    ) -> UsageWindowMetrics:
        cfg = self.config
        now = self._clock()
        window = timedelta(hours=window_hours)
        cutoff = now - window
        burn_cutoff = now - timedelta(hours=cfg.burn_rate_window_hours)

        input_tokens = 0
        output_tokens = 0
        burned = 0
        oldest: datetime | None = None

        for event in events:
            if event.usage is None:
                continue
            if event.timestamp >= cutoff:
                input_tokens += event.usage.input_tokens
                output_tokens += event.usage.output_tokens
                if oldest is None or event.timestamp < oldest:
                    oldest = event.timestamp
            if event.timestamp >= burn_cutoff:
                burned += event.usage.billable_tokens

        total = input_tokens + output_tokens
        plan_limit = detect_plan_limit(total, cfg.plan_tiers, cfg.default_plan_limit)
        burn_rate = burned / cfg.burn_rate_window_hours

        reset_minutes = 0
        if oldest is not None:
            seconds_left = (oldest + window - now).total_seconds()
            reset_minutes = max(0, math.floor(seconds_left / 60))

        return UsageWindowMetrics(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=total,
            percentage_of_plan=total / plan_limit * 100 if plan_limit > 0 else 0.0,
            plan_limit_tokens=plan_limit,
            burn_rate_per_hour=burn_rate,
            estimated_minutes_remaining=estimate_minutes_remaining(
                total, plan_limit, burn_rate
            ),
            window_reset_minutes=reset_minutes,
        )

    def _analyze(self, events: Iterable[LogEvent]) -> _LogAnalysis:
        """Single pass over the log: session start, compaction, latest usage."""
        result = _LogAnalysis()
        compact_command: tuple[datetime, int] | None = None
        compact_complete: datetime | None = None
        first_seen: datetime | None = None
        explicit_start: datetime | None = None

        for index, event in enumerate(events):
            if first_seen is None:
                first_seen = event.timestamp
            if explicit_start is None and event.kind == "session_start":
                explicit_start = event.timestamp

            if event.kind == COMPACT_COMPLETE_KIND:
                compact_complete = event.timestamp
            elif (
                event.kind in ("user", "user_message")
                and event.text is not None
                and event.text.strip() == COMPACT_COMMAND
            ):
                compact_command = (event.timestamp, index)

            # Every API call resends the full context: the newest reply is the context size
            if event.kind == "assistant" and event.usage is not None:
                tokens = event.usage.context_tokens
                result.tokens_at_index[index] = tokens
                result.current_context_tokens = tokens

        result.session_start = explicit_start or first_seen

        verified = None
        if compact_command is not None:
            verified = self._verify_compact(compact_command, result.tokens_at_index)

        candidates = [ts for ts in (verified, compact_complete) if ts is not None]
        result.last_compact = max(candidates) if candidates else None
        return result

    def _verify_compact(
        self, command: tuple[datetime, int], tokens_at_index: dict[int, int]
    ) -> datetime | None:
        timestamp, position = command
        before = [
            tokens
            for index, tokens in tokens_at_index.items()
            if position - COMPACT_LOOKBEHIND < index < position
        ]
        after = [
            tokens
            for index, tokens in tokens_at_index.items()
            if position < index < position + COMPACT_LOOKAHEAD
        ]

        if before and after:
            avg_before = sum(before) / len(before)
            avg_after = sum(after) / len(after)
            reduction = (avg_before - avg_after) / avg_before if avg_before > 0 else 0.0
            if reduction >= COMPACT_MIN_REDUCTION:
                return timestamp

        if self._clock() - timestamp < COMPACT_RECENT_GRACE:
            return timestamp
        return None


def read_log_lines(path: Path | str) -> list[str]:
    """Read every non-blank line of a log file.

    Raises:
        OSError: If the file cannot be read.
    """
    with open(path, encoding="utf-8", errors="replace") as f:
        return [line for line in f.read().split("\n") if line.strip()]
