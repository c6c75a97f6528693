"""Message importance analysis and keep/summarize selection."""

from __future__ import annotations

import re
from typing import Sequence

from context_monitor.compaction.models import (
    Importance,
    Message,
    MessageAnalysis,
    MessageSelection,
)

FILE_CHANGE_WORDS = ("file", "create", "modify", "delete")
ERROR_WORDS = ("error", "bug", "fail", "warning")
DECISION_WORDS = ("decide", "choose", "architecture", "design", "implement", "approach")
EDIT_TOOLS = ("Edit", "Write")

FILE_REF_PATTERN = re.compile(
    r"[a-zA-Z0-9_\-/.]+\.(?:ts|tsx|js|jsx|py|go|rs|cpp|java|md|json|yaml|yml)"
)
CODE_REF_PATTERN = re.compile(r"`[a-zA-Z_][a-zA-Z0-9_]*`")
MAX_CODE_REFS = 5


def _used_edit_tool(metadata: dict) -> bool:
    steps = metadata.get("thinkingSteps") or metadata.get("thinking_steps") or []
    return any(isinstance(step, dict) and step.get("tool") in EDIT_TOOLS for step in steps)


def analyze_message(message: Message) -> MessageAnalysis:
    """Classify a message by the markers it carries."""
    content = message.content.lower()

    has_file_changes = any(w in content for w in FILE_CHANGE_WORDS) or _used_edit_tool(
        message.metadata
    )
    has_errors = any(w in content for w in ERROR_WORDS)
    is_decision = any(w in content for w in DECISION_WORDS)

    extracted = [f"File: {m}" for m in FILE_REF_PATTERN.findall(message.content)]
    extracted += [
        f"Code: {m}" for m in CODE_REF_PATTERN.findall(message.content)[:MAX_CODE_REFS]
    ]

    if has_errors and has_file_changes:
        importance = Importance.CRITICAL
    elif is_decision or (has_file_changes and message.role == "assistant"):
        importance = Importance.HIGH
    elif has_file_changes or has_errors or message.role == "user":
        importance = Importance.MEDIUM
    else:
        importance = Importance.LOW

    return MessageAnalysis(
        message=message,
        importance=importance,
        has_file_changes=has_file_changes,
        has_errors=has_errors,
        is_decision=is_decision,
        extracted_context=extracted,
    )


def select_messages_to_keep(
    analyses: Sequence[MessageAnalysis],
    keep_initial_count: int,
    keep_recent_count: int,
) -> MessageSelection:
    """
    Keep the opening and closing messages plus anything important between.

    Args:
        analyses: Per-message analyses in conversation order.
        keep_initial_count: Leading messages always kept (project context).
        keep_recent_count: Trailing messages always kept (recent context).

    Returns:
        MessageSelection; `to_summarize` holds the medium/low middle messages.
    """
    total = len(analyses)
    initial_end = min(keep_initial_count, total)
    recent_start = max(initial_end, total - keep_recent_count)

    middle = analyses[initial_end:recent_start]
    extracted = list(dict.fromkeys(item for a in analyses for item in a.extracted_context))

    return MessageSelection(
        initial_messages=[a.message for a in analyses[:initial_end]],
        important_messages=[a.message for a in middle if a.is_preserved],
        recent_messages=[a.message for a in analyses[recent_start:]],
        to_summarize=[a.message for a in middle if not a.is_preserved],
        extracted_context=extracted,
    )
