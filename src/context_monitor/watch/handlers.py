"""Watchdog event handlers for session logs."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Callable

from watchdog.events import FileSystemEvent, FileSystemEventHandler


def _event_paths(event: FileSystemEvent) -> list[str]:
    paths = [os.path.abspath(os.fsdecode(event.src_path))]
    dest = getattr(event, "dest_path", None)
    if dest:
        paths.append(os.path.abspath(os.fsdecode(dest)))
    return paths


class LogFileHandler(FileSystemEventHandler):
    """Fires `on_change` when one specific log file is written or replaced."""

    def __init__(self, path: Path | str, on_change: Callable[[], None]) -> None:
        super().__init__()
        self._path = os.path.abspath(path)
        self._on_change = on_change

    def _handle(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        if self._path in _event_paths(event):
            self._on_change()

    def on_modified(self, event: FileSystemEvent) -> None:
        self._handle(event)

    def on_created(self, event: FileSystemEvent) -> None:
        self._handle(event)

    def on_moved(self, event: FileSystemEvent) -> None:
        self._handle(event)


class LogCreatedHandler(FileSystemEventHandler):
    """Fires `on_created` when a file with the log extension appears."""

    def __init__(self, extension: str, on_created: Callable[[str], None]) -> None:
        super().__init__()
        self._extension = extension
        self._on_created = on_created

    def _handle(self, path: str) -> None:
        if path.endswith(self._extension):
            self._on_created(path)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._handle(_event_paths(event)[0])

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._handle(_event_paths(event)[-1])


class DirectoryCreatedHandler(FileSystemEventHandler):
    """Fires `on_created` when a subdirectory appears (session dir not there yet)."""

    def __init__(self, on_created: Callable[[str], None]) -> None:
        super().__init__()
        self._on_created = on_created

    def on_created(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            self._on_created(_event_paths(event)[0])

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            self._on_created(_event_paths(event)[-1])
