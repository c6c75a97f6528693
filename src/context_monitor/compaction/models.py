"""Data models for session compaction."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class Message:
    """A chat message as held by the UI."""

    id: str
    role: str  # "user" | "assistant"
    content: str
    timestamp: int = 0  # epoch milliseconds
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        return cls(
            id=str(data.get("id", "")),
            role=data.get("role", "user"),
            content=data.get("content") or "",
            timestamp=int(data.get("timestamp") or 0),
            metadata=data.get("metadata") or {},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp,
            "metadata": self.metadata,
        }


class Importance(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass
class MessageAnalysis:
    """Importance classification of a single message."""

    message: Message
    importance: Importance
    has_file_changes: bool
    has_errors: bool
    is_decision: bool
    extracted_context: list[str] = field(default_factory=list)

    @property
    def is_preserved(self) -> bool:
        return self.importance in (Importance.CRITICAL, Importance.HIGH)


@dataclass
class MessageSelection:
    """Which messages survive compaction and which get summarized."""

    initial_messages: list[Message]
    important_messages: list[Message]
    recent_messages: list[Message]
    to_summarize: list[Message]
    extracted_context: list[str]

    @property
    def kept_messages(self) -> list[Message]:
        return self.initial_messages + self.important_messages + self.recent_messages


@dataclass
class CompactResult:
    """Outcome of a compaction attempt. Failures carry `error`, never raise."""

    success: bool
    summary: str | None = None
    original_message_count: int = 0
    kept_message_count: int = 0
    summarized_message_count: int = 0
    tokens_before_estimate: int = 0
    tokens_after_estimate: int = 0
    preserved_messages: list[Message] = field(default_factory=list)
    error: str | None = None

    @classmethod
    def failure(cls, error: str, original_message_count: int = 0) -> CompactResult:
        return cls(
            success=False,
            error=error,
            original_message_count=original_message_count,
        )

    @property
    def saved_percent(self) -> float:
        if self.tokens_before_estimate <= 0:
            return 0.0
        return (1 - self.tokens_after_estimate / self.tokens_before_estimate) * 100
