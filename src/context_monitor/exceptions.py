"""Context monitor exceptions."""


class ContextMonitorError(Exception):
    """Base exception for context monitor operations."""


class ConfigError(ContextMonitorError):
    """Invalid or unreadable configuration."""


class WatcherError(ContextMonitorError):
    """A filesystem watcher could not be installed for a workspace."""

    def __init__(self, workspace_id: str, message: str) -> None:
        self.workspace_id = workspace_id
        self.message = message
        super().__init__(f"Watcher for workspace '{workspace_id}' failed: {message}")


class SummarizerError(ContextMonitorError):
    """Summarization failed after exhausting retries."""
