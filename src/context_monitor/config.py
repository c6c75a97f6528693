"""Configuration for the context monitor."""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from context_monitor.exceptions import ConfigError

LOGGER = logging.getLogger(__name__)

DEFAULT_PROJECTS_DIR = Path.home() / ".claude" / "projects"

# Canonical Claude Code conversation file name; agent/sidechain logs do not match.
PRIMARY_LOG_PATTERN = (
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}\.jsonl$"
)


@dataclass(frozen=True)
class PlanTier:
    """Observed usage strictly above `above` implies a plan ceiling of `limit`."""

    above: int
    limit: int


def default_plan_tiers() -> list[PlanTier]:
    return [
        PlanTier(above=88_000, limit=220_000),  # Max20
        PlanTier(above=44_000, limit=88_000),  # Max5
    ]


@dataclass
class MonitorConfig:
    # Log discovery
    projects_dir: Path = DEFAULT_PROJECTS_DIR
    log_extension: str = ".jsonl"
    primary_log_pattern: str = PRIMARY_LOG_PATTERN
    primary_log_bonus_seconds: float = 1.0

    # Watching
    debounce_seconds: float = 0.1

    # Context window
    context_limit: int = 200_000
    compact_threshold: float = 85.0
    warning_threshold: float = 70.0
    system_overhead: float = 1.05
    prunable_ratio: float = 0.35

    # Rolling usage window
    usage_window_hours: float = 5.0
    burn_rate_window_hours: float = 1.0
    plan_tiers: list[PlanTier] = field(default_factory=default_plan_tiers)
    default_plan_limit: int = 44_000  # Pro

    # Auto-compaction
    min_message_count: int = 20
    compact_cooldown_seconds: float = 300.0
    keep_initial_count: int = 3
    keep_recent_count: int = 10

    # Summarizer
    claude_cli_path: Path = Path.home() / ".claude" / "local" / "claude"
    summary_model: str = "sonnet"
    summary_max_retries: int = 3
    summary_retry_delay_seconds: float = 1.0

    def __post_init__(self) -> None:
        self.projects_dir = Path(self.projects_dir).expanduser()
        self.claude_cli_path = Path(self.claude_cli_path).expanduser()
        self.plan_tiers = sorted(
            (_coerce_tier(t) for t in self.plan_tiers),
            key=lambda t: t.above,
            reverse=True,
        )
        if self.context_limit <= 0:
            raise ConfigError("context_limit must be positive")
        if self.debounce_seconds < 0:
            raise ConfigError("debounce_seconds must not be negative")
        if self.usage_window_hours <= 0 or self.burn_rate_window_hours <= 0:
            raise ConfigError("usage windows must be positive")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MonitorConfig:
        """Build a config from a plain mapping, rejecting unknown keys."""
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")
        try:
            return cls(**dict(data))
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid config: {exc}") from exc

    @classmethod
    def from_yaml(cls, path: Path | str) -> MonitorConfig:
        """Load a config from a YAML file. An empty file yields defaults."""
        path = Path(path)
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except OSError as exc:
            raise ConfigError(f"Cannot read config {path}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise ConfigError(f"Malformed YAML in {path}: {exc}") from exc

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config {path} must contain a mapping")

        LOGGER.debug("Loaded config from %s (%d keys)", path, len(data))
        return cls.from_dict(data)


def _coerce_tier(value: PlanTier | Mapping[str, Any]) -> PlanTier:
    if isinstance(value, PlanTier):
        return value
    try:
        return PlanTier(above=int(value["above"]), limit=int(value["limit"]))
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid plan tier {value!r}: {exc}") from exc
