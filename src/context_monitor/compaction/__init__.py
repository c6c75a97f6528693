"""Conversation compaction: trigger policy, selection and summarization."""

from context_monitor.compaction.compactor import SessionCompactor
from context_monitor.compaction.models import (
    CompactResult,
    Importance,
    Message,
    MessageAnalysis,
    MessageSelection,
)
from context_monitor.compaction.policy import (
    CompactionAction,
    CompactionDecision,
    CompactionOutcome,
    CompactionPolicy,
    TriggerRecord,
    decide,
)
from context_monitor.compaction.selection import analyze_message, select_messages_to_keep
from context_monitor.compaction.summarizer import (
    ClaudeCliSummarizer,
    Summarizer,
    build_summarizer,
    build_summary_prompt,
    extract_summary_text,
)
from context_monitor.compaction.token_counter import TokenCounter

__all__ = [
    # Models
    "CompactResult",
    "Importance",
    "Message",
    "MessageAnalysis",
    "MessageSelection",
    # Policy
    "CompactionAction",
    "CompactionDecision",
    "CompactionOutcome",
    "CompactionPolicy",
    "TriggerRecord",
    "decide",
    # Selection
    "analyze_message",
    "select_messages_to_keep",
    # Summarizers
    "ClaudeCliSummarizer",
    "Summarizer",
    "build_summarizer",
    "build_summary_prompt",
    "extract_summary_text",
    # Compaction
    "SessionCompactor",
    "TokenCounter",
]
