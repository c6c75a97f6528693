"""Context and usage-window metrics."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Any

URGENT_PERCENT = 95.0


class CompactSeverity(str, Enum):
    """How loudly the UI should suggest compaction."""

    NORMAL = "normal"
    WARNING = "warning"
    RECOMMEND = "recommend"
    URGENT = "urgent"


def should_compact(percentage: float, threshold: float) -> bool:
    """Compaction is suggested once usage reaches the threshold."""
    return percentage >= threshold


def severity_for(
    percentage: float, compact_threshold: float, warning_threshold: float
) -> CompactSeverity:
    if percentage >= max(URGENT_PERCENT, compact_threshold):
        return CompactSeverity.URGENT
    if percentage >= compact_threshold:
        return CompactSeverity.RECOMMEND
    if percentage >= warning_threshold:
        return CompactSeverity.WARNING
    return CompactSeverity.NORMAL


@dataclass(frozen=True)
class ContextMetrics:
    """Context-window usage for one conversation log."""

    current_tokens: int
    limit_tokens: int
    percentage: float
    prunable_tokens_estimate: int  # approximate, display as "~N"
    should_compact: bool
    last_compact_timestamp: datetime | None = None
    session_start: datetime | None = None
    severity: CompactSeverity = CompactSeverity.NORMAL

    @classmethod
    def empty(cls, limit_tokens: int) -> ContextMetrics:
        return cls(
            current_tokens=0,
            limit_tokens=limit_tokens,
            percentage=0.0,
            prunable_tokens_estimate=0,
            should_compact=False,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "current_tokens": self.current_tokens,
            "limit_tokens": self.limit_tokens,
            "percentage": round(self.percentage, 1),
            "prunable_tokens_estimate": self.prunable_tokens_estimate,
            "should_compact": self.should_compact,
            "last_compact_timestamp": _iso(self.last_compact_timestamp),
            "session_start": _iso(self.session_start),
            "severity": self.severity.value,
        }


@dataclass(frozen=True)
class UsageWindowMetrics:
    """Token consumption inside the trailing plan window."""

    input_tokens: int
    output_tokens: int
    total_tokens: int
    percentage_of_plan: float
    plan_limit_tokens: int
    burn_rate_per_hour: float
    # None when nothing was burned recently: the limit is never reached
    estimated_minutes_remaining: int | None
    window_reset_minutes: int = 0

    @classmethod
    def empty(cls, plan_limit_tokens: int) -> UsageWindowMetrics:
        return cls(
            input_tokens=0,
            output_tokens=0,
            total_tokens=0,
            percentage_of_plan=0.0,
            plan_limit_tokens=plan_limit_tokens,
            burn_rate_per_hour=0.0,
            estimated_minutes_remaining=None,
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["percentage_of_plan"] = round(self.percentage_of_plan, 1)
        return data


def format_time_since(timestamp: datetime | None, now: datetime) -> str:
    """Format elapsed time like "2h ago" or "30m ago"."""
    if timestamp is None:
        return "Never"

    minutes = int((now - timestamp).total_seconds() // 60)
    hours = minutes // 60
    days = hours // 24

    if days > 0:
        return f"{days}d ago"
    if hours > 0:
        return f"{hours}h ago"
    if minutes > 0:
        return f"{minutes}m ago"
    return "Just now"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None
