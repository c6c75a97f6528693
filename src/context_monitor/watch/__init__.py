"""Filesystem watching and the per-workspace tracking state machine."""

from context_monitor.watch.emitter import (
    CONTEXT_UPDATED,
    CONTEXT_WAITING,
    ERROR,
    EventEmitter,
)
from context_monitor.watch.state import (
    SessionLogRef,
    WatcherState,
    WatchMode,
    WorkspaceHandle,
)
from context_monitor.watch.tracker import WorkspaceContextTracker

__all__ = [
    # Events
    "CONTEXT_UPDATED",
    "CONTEXT_WAITING",
    "ERROR",
    "EventEmitter",
    # State
    "SessionLogRef",
    "WatcherState",
    "WatchMode",
    "WorkspaceHandle",
    # Tracker
    "WorkspaceContextTracker",
]
