"""Parsing of JSONL conversation log records."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Iterator

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenUsage:
    """Token usage attached to a log record."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_creation_tokens: int = 0

    @property
    def context_tokens(self) -> int:
        """Everything the request carried plus the reply."""
        return (
            self.input_tokens
            + self.cache_read_tokens
            + self.cache_creation_tokens
            + self.output_tokens
        )

    @property
    def billable_tokens(self) -> int:
        """Input plus output, as counted against the rolling plan window."""
        return self.input_tokens + self.output_tokens

    @classmethod
    def from_dict(cls, usage: dict[str, Any]) -> TokenUsage:
        return cls(
            input_tokens=_safe_int(usage.get("input_tokens")),
            output_tokens=_safe_int(usage.get("output_tokens")),
            cache_read_tokens=_safe_int(
                usage.get("cache_read_input_tokens", usage.get("cache_read_tokens"))
            ),
            cache_creation_tokens=_safe_int(
                usage.get(
                    "cache_creation_input_tokens", usage.get("cache_creation_tokens")
                )
            ),
        )


@dataclass(frozen=True)
class LogEvent:
    """One parsed record of a conversation log."""

    kind: str
    timestamp: datetime
    usage: TokenUsage | None = None
    text: str | None = None


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if not isinstance(value, str) or not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_line(line: str) -> LogEvent | None:
    """Parse a single JSONL line. Returns None for anything unusable."""
    try:
        data = json.loads(line)
    except (json.JSONDecodeError, ValueError):
        return None
    if not isinstance(data, dict):
        return None

    kind = data.get("type")
    timestamp = parse_timestamp(data.get("timestamp"))
    if not isinstance(kind, str) or timestamp is None:
        return None

    message = data.get("message")
    if not isinstance(message, dict):
        message = {}

    raw_usage = message.get("usage") or data.get("usage")
    usage = TokenUsage.from_dict(raw_usage) if isinstance(raw_usage, dict) else None

    text = _extract_text(message.get("content"))
    if text is None:
        text = _extract_text(data.get("content"))

    return LogEvent(kind=kind, timestamp=timestamp, usage=usage, text=text)


def iter_events(lines: Iterable[str]) -> Iterator[LogEvent]:
    """Yield parsed events, skipping lines that do not parse."""
    skipped = 0
    for line in lines:
        event = parse_line(line)
        if event is None:
            skipped += 1
            continue
        yield event
    if skipped:
        LOGGER.debug("Skipped %d unparsable log lines", skipped)


def _extract_text(content: Any) -> str | None:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        for block in content:
            if isinstance(block, str):
                return block
            if isinstance(block, dict) and block.get("type") == "text":
                text = block.get("text")
                if isinstance(text, str):
                    return text
    return None


def _safe_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(0, value)
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0
