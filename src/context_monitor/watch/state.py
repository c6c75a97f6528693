"""Per-workspace watcher state."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from watchdog.observers.api import BaseObserver


class WatchMode(str, Enum):
    """Which kind of watch a workspace is in."""

    DIRECTORY = "directory"  # waiting for a log file to appear
    FILE = "file"  # tailing a known log file


@dataclass(frozen=True)
class SessionLogRef:
    """The log file being tailed. Replaced, never mutated."""

    path: Path
    last_known_size: int


@dataclass(frozen=True)
class WorkspaceHandle:
    workspace_id: str
    workspace_path: str


@dataclass(eq=False)
class WatcherState:
    """
    Watch state for one tracked workspace.

    At most one of `file_watcher` / `directory_watcher` is set. Only the
    tracker touches this object; callers get metric values, not state.
    """

    handle: WorkspaceHandle
    session_dir: Path
    mode: WatchMode = WatchMode.DIRECTORY
    file_watcher: BaseObserver | None = None
    directory_watcher: BaseObserver | None = None
    watched_dir: Path | None = None
    log: SessionLogRef | None = None
    offset: int = 0
    closed: bool = False
    timer: threading.Timer | None = None
    timer_lock: threading.Lock = field(default_factory=threading.Lock)
    pass_lock: threading.RLock = field(default_factory=threading.RLock)

    @property
    def workspace_id(self) -> str:
        return self.handle.workspace_id

    @property
    def active_watchers(self) -> list[BaseObserver]:
        return [w for w in (self.file_watcher, self.directory_watcher) if w is not None]
