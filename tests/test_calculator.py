"""Tests for MetricCalculator and metric models."""

import json
import math
from datetime import timedelta

import pytest

from context_monitor.config import MonitorConfig, default_plan_tiers
from context_monitor.metrics.calculator import (
    MetricCalculator,
    detect_plan_limit,
    estimate_minutes_remaining,
)
from context_monitor.metrics.models import (
    CompactSeverity,
    ContextMetrics,
    format_time_since,
    severity_for,
    should_compact,
)

from conftest import NOW, ago, assistant_record, iso, user_record, write_jsonl


@pytest.fixture
def calculator(config, clock):
    return MetricCalculator(config, clock=clock)


class TestShouldCompact:
    """Threshold boundary."""

    @pytest.mark.parametrize(
        "percentage,expected",
        [(84.0, False), (84.99, False), (85.0, True), (86.0, True)],
    )
    def test_boundary(self, percentage, expected):
        assert should_compact(percentage, 85.0) is expected

    def test_from_token_counts(self, tmp_path):
        """threshold-1, threshold and threshold+1 tokens."""
        config = MonitorConfig(
            projects_dir=tmp_path, context_limit=1000, system_overhead=1.0
        )
        calc = MetricCalculator(config)

        assert calc.build_context_metrics(849).should_compact is False
        assert calc.build_context_metrics(850).should_compact is True
        assert calc.build_context_metrics(851).should_compact is True


class TestSeverity:
    def test_levels(self):
        assert severity_for(50, 85, 70) is CompactSeverity.NORMAL
        assert severity_for(70, 85, 70) is CompactSeverity.WARNING
        assert severity_for(85, 85, 70) is CompactSeverity.RECOMMEND
        assert severity_for(95, 85, 70) is CompactSeverity.URGENT


class TestCalculateContext:
    """Context metrics from a log file."""

    def test_latest_assistant_usage_is_context(self, calculator, tmp_path):
        """Newest assistant usage, with overhead, is the current context."""
        log = write_jsonl(tmp_path / "s.jsonl", [
            assistant_record(ago(minutes=30), input_tokens=500, output_tokens=100),
            assistant_record(
                ago(minutes=20), input_tokens=1000, output_tokens=500, cache_read=500
            ),
        ])

        metrics = calculator.calculate_context(log)

        assert metrics.current_tokens == 2100  # floor(2000 * 1.05)
        assert metrics.limit_tokens == 200_000
        assert metrics.percentage == pytest.approx(1.05)
        assert metrics.prunable_tokens_estimate == math.floor(2100 * 0.35)
        assert metrics.should_compact is False
        assert metrics.severity is CompactSeverity.NORMAL

    def test_high_usage_should_compact(self, calculator, tmp_path):
        log = write_jsonl(tmp_path / "s.jsonl", [
            assistant_record(ago(minutes=1), input_tokens=10_000, cache_read=175_000),
        ])

        metrics = calculator.calculate_context(log)

        assert metrics.should_compact is True
        assert metrics.severity is CompactSeverity.URGENT

    def test_session_start_is_first_event(self, calculator, tmp_path):
        log = write_jsonl(tmp_path / "s.jsonl", [
            user_record(ago(hours=2), "hi"),
            assistant_record(ago(hours=1), input_tokens=10),
        ])

        assert calculator.calculate_context(log).session_start == ago(hours=2)

    def test_explicit_session_start_wins(self, calculator, tmp_path):
        log = write_jsonl(tmp_path / "s.jsonl", [
            user_record(ago(hours=2), "hi"),
            {"type": "session_start", "timestamp": iso(ago(hours=1))},
        ])

        assert calculator.calculate_context(log).session_start == ago(hours=1)

    def test_corrupt_lines_are_skipped(self, calculator, tmp_path):
        """Partial or corrupt lines do not break the calculation."""
        log = tmp_path / "s.jsonl"
        log.write_text(
            "{broken\n"
            + json.dumps(assistant_record(ago(minutes=5), input_tokens=1000))
            + "\n[]\n"
        )

        assert calculator.calculate_context(log).current_tokens == 1050

    def test_missing_file_gives_empty_metrics(self, calculator, tmp_path):
        metrics = calculator.calculate_context(tmp_path / "missing.jsonl")

        assert metrics == ContextMetrics.empty(200_000)

    def test_empty_file_gives_zero_context(self, calculator, tmp_path):
        """An existing but empty log is zero usage, not an error."""
        log = tmp_path / "s.jsonl"
        log.write_bytes(b"")

        metrics = calculator.calculate_context(log)

        assert metrics.current_tokens == 0
        assert metrics.percentage == 0.0
        assert metrics.should_compact is False
        assert metrics.severity is CompactSeverity.NORMAL
        assert metrics.session_start is None

    def test_to_dict_is_serializable(self, calculator, tmp_path):
        log = write_jsonl(tmp_path / "s.jsonl", [
            assistant_record(ago(minutes=5), input_tokens=1000),
        ])
        data = calculator.calculate_context(log).to_dict()

        json.dumps(data)
        assert data["severity"] == "normal"
        assert data["session_start"] == ago(minutes=5).isoformat()


class TestCompactDetection:
    """Last /compact detection."""

    def _history(self, before_tokens, after_tokens, command_at):
        records = [
            assistant_record(command_at - timedelta(minutes=4 - i), input_tokens=before_tokens)
            for i in range(4)
        ]
        records.append(user_record(command_at, "/compact"))
        records += [
            assistant_record(command_at + timedelta(minutes=1 + i), input_tokens=after_tokens)
            for i in range(3)
        ]
        return records

    def test_verified_by_context_drop(self, calculator, tmp_path):
        """Context shrinking after the command confirms it."""
        command_at = ago(hours=2)
        log = write_jsonl(tmp_path / "s.jsonl", self._history(100_000, 20_000, command_at))

        assert calculator.calculate_context(log).last_compact_timestamp == command_at

    def test_unverified_old_command_ignored(self, calculator, tmp_path):
        """An old /compact with no context drop does not count."""
        log = write_jsonl(
            tmp_path / "s.jsonl", self._history(100_000, 100_000, ago(hours=2))
        )

        assert calculator.calculate_context(log).last_compact_timestamp is None

    def test_recent_command_counts(self, calculator, tmp_path):
        """A /compact from the last few minutes counts before data confirms it."""
        command_at = ago(minutes=2)
        log = write_jsonl(tmp_path / "s.jsonl", [
            assistant_record(ago(minutes=3), input_tokens=100_000),
            user_record(command_at, "/compact"),
        ])

        assert calculator.calculate_context(log).last_compact_timestamp == command_at

    def test_compact_complete_event(self, calculator, tmp_path):
        log = write_jsonl(tmp_path / "s.jsonl", [
            {"type": "compact_complete", "timestamp": iso(ago(hours=3))},
            assistant_record(ago(hours=1), input_tokens=10),
        ])

        assert calculator.calculate_context(log).last_compact_timestamp == ago(hours=3)

    def test_other_text_is_not_a_command(self, calculator, tmp_path):
        log = write_jsonl(tmp_path / "s.jsonl", [
            user_record(ago(minutes=1), "please /compact later"),
        ])

        assert calculator.calculate_context(log).last_compact_timestamp is None


class TestUsageWindow:
    """Rolling window, burn rate and time left."""

    def test_excludes_stale_events(self, calculator, tmp_path):
        """Only events inside the trailing window are counted."""
        log = write_jsonl(tmp_path / "s.jsonl", [
            assistant_record(ago(hours=6), input_tokens=1000),
            assistant_record(ago(minutes=30), input_tokens=40, output_tokens=20),
            assistant_record(ago(minutes=20), input_tokens=30, output_tokens=15),
            assistant_record(ago(minutes=10), input_tokens=30, output_tokens=15),
        ])

        usage = calculator.calculate_usage_window(log, 5)

        assert usage.input_tokens == 100
        assert usage.output_tokens == 50
        assert usage.total_tokens == 150
        assert usage.plan_limit_tokens == 44_000
        assert usage.burn_rate_per_hour == pytest.approx(150.0)
        assert usage.window_reset_minutes == 270

    def test_burn_rate_uses_last_hour(self, calculator, tmp_path):
        log = write_jsonl(tmp_path / "s.jsonl", [
            assistant_record(ago(hours=3), input_tokens=500),
            assistant_record(ago(minutes=30), input_tokens=100, output_tokens=20),
        ])

        usage = calculator.calculate_usage_window(log)

        assert usage.total_tokens == 620
        assert usage.burn_rate_per_hour == pytest.approx(120.0)

    def test_cache_tokens_not_billed(self, calculator, tmp_path):
        log = write_jsonl(tmp_path / "s.jsonl", [
            assistant_record(ago(minutes=5), input_tokens=10, cache_read=5000),
        ])

        assert calculator.calculate_usage_window(log).total_tokens == 10

    def test_no_recent_burn_has_no_estimate(self, calculator, tmp_path):
        """Zero burn rate means no time-to-limit, not a crash."""
        log = write_jsonl(tmp_path / "s.jsonl", [
            assistant_record(ago(hours=3), input_tokens=500),
        ])

        usage = calculator.calculate_usage_window(log)

        assert usage.burn_rate_per_hour == 0
        assert usage.estimated_minutes_remaining is None

    def test_larger_plan_detected(self, calculator, tmp_path):
        log = write_jsonl(tmp_path / "s.jsonl", [
            assistant_record(ago(hours=2), input_tokens=50_000),
        ])

        usage = calculator.calculate_usage_window(log)

        assert usage.plan_limit_tokens == 88_000
        assert usage.percentage_of_plan == pytest.approx(50_000 / 88_000 * 100)

    def test_missing_file_gives_empty_metrics(self, calculator, tmp_path):
        usage = calculator.calculate_usage_window(tmp_path / "missing.jsonl")

        assert usage.total_tokens == 0
        assert usage.estimated_minutes_remaining is None


class TestHelpers:
    def test_detect_plan_limit(self):
        tiers = default_plan_tiers()
        assert detect_plan_limit(1_000, tiers, 44_000) == 44_000
        assert detect_plan_limit(44_000, tiers, 44_000) == 44_000
        assert detect_plan_limit(44_001, tiers, 44_000) == 88_000
        assert detect_plan_limit(100_000, tiers, 44_000) == 220_000

    def test_estimate_minutes_remaining(self):
        assert estimate_minutes_remaining(1_000, 4_000, 600.0) == 300
        assert estimate_minutes_remaining(5_000, 4_000, 600.0) == 0
        assert estimate_minutes_remaining(1_000, 4_000, 0.0) is None

    @pytest.mark.parametrize(
        "delta,expected",
        [
            (None, "Never"),
            (timedelta(seconds=30), "Just now"),
            (timedelta(minutes=30), "30m ago"),
            (timedelta(hours=2, minutes=5), "2h ago"),
            (timedelta(days=3), "3d ago"),
        ],
    )
    def test_format_time_since(self, delta, expected):
        ts = None if delta is None else NOW - delta
        assert format_time_since(ts, NOW) == expected
