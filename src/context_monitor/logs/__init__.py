"""Session log discovery, tailing and parsing."""

from context_monitor.logs.events import (
    LogEvent,
    TokenUsage,
    iter_events,
    parse_line,
    parse_timestamp,
)
from context_monitor.logs.locator import (
    find_active_log_file,
    resolve_session_directory,
    session_dir_name,
)
from context_monitor.logs.tail import TailResult, complete_length, read_new_lines

__all__ = [
    # Events
    "LogEvent",
    "TokenUsage",
    "iter_events",
    "parse_line",
    "parse_timestamp",
    # Locator
    "find_active_log_file",
    "resolve_session_directory",
    "session_dir_name",
    # Tail
    "TailResult",
    "complete_length",
    "read_new_lines",
]
