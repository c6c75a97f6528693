"""Context-window and rolling usage metrics."""

from context_monitor.metrics.calculator import (
    MetricCalculator,
    detect_plan_limit,
    estimate_minutes_remaining,
    read_log_lines,
)
from context_monitor.metrics.models import (
    CompactSeverity,
    ContextMetrics,
    UsageWindowMetrics,
    format_time_since,
    severity_for,
    should_compact,
)

__all__ = [
    "CompactSeverity",
    "ContextMetrics",
    "MetricCalculator",
    "UsageWindowMetrics",
    "detect_plan_limit",
    "estimate_minutes_remaining",
    "format_time_since",
    "read_log_lines",
    "severity_for",
    "should_compact",
]
