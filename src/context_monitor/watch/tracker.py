"""Per-workspace context tracking driven by filesystem events."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Callable

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from context_monitor.config import MonitorConfig
from context_monitor.exceptions import WatcherError
from context_monitor.logs.locator import find_active_log_file, resolve_session_directory
from context_monitor.logs.tail import complete_length, read_new_lines
from context_monitor.metrics.calculator import MetricCalculator
from context_monitor.metrics.models import ContextMetrics, UsageWindowMetrics
from context_monitor.watch.emitter import (
    CONTEXT_UPDATED,
    CONTEXT_WAITING,
    ERROR,
    EventEmitter,
    Listener,
)
from context_monitor.watch.handlers import (
    DirectoryCreatedHandler,
    LogCreatedHandler,
    LogFileHandler,
)
from context_monitor.watch.state import (
    SessionLogRef,
    WatcherState,
    WatchMode,
    WorkspaceHandle,
)

LOGGER = logging.getLogger(__name__)

OBSERVER_JOIN_TIMEOUT = 2.0


def nearest_existing_dir(path: Path) -> Path:
    """Return `path` or its closest ancestor that exists on disk."""
    for candidate in (path, *path.parents):
        if candidate.is_dir():
            return candidate
    return Path(path.anchor or ".")


class WorkspaceContextTracker:
    """
    Tracks context usage for many workspaces at once.

    Each workspace is a two-state machine:

    DIRECTORY: no log yet. The session directory (or, while it does not
        exist, its nearest existing ancestor) is watched non-recursively.
        When a log appears the directory watch is closed and the workspace
        moves to FILE with an immediate metrics snapshot.
    FILE: one log file is watched for writes. Bursts of writes are
        debounced into one pass; a pass reads the appended lines and, if
        any arrived, recomputes metrics and emits `context-updated`.

    Observer callbacks only arm the workspace's debounce timer. The timer
    thread runs the pass under the workspace's own lock, so passes are
    sequential per workspace while workspaces proceed independently.

    Example:
        tracker = WorkspaceContextTracker(MonitorConfig())
        tracker.on("context-updated", lambda wid, metrics: print(wid, metrics))
        tracker.start_tracking("ws-1", "/home/me/project")
        ...
        tracker.close()
    """

    def __init__(
        self,
        config: MonitorConfig | None = None,
        calculator: MetricCalculator | None = None,
        observer_factory: Callable[[], BaseObserver] = Observer,
    ) -> None:
        self.config = config or MonitorConfig()
        self.calculator = calculator or MetricCalculator(self.config)
        self._observer_factory = observer_factory
        self._emitter = EventEmitter()
        self._states: dict[str, WatcherState] = {}
        self._lock = threading.Lock()

    # -- subscriptions -------------------------------------------------

    def on(self, event: str, listener: Listener) -> Listener:
        """Subscribe to `context-updated`, `context-waiting` or `error`."""
        return self._emitter.on(event, listener)

    def off(self, event: str, listener: Listener) -> None:
        self._emitter.off(event, listener)

    # -- public operations ---------------------------------------------

    def start_tracking(
        self, workspace_id: str, workspace_path: str
    ) -> ContextMetrics | None:
        """
        Begin tracking a workspace, replacing any previous tracking of it.

        Returns:
            The initial metrics, or None while no log exists yet (a
            `context-waiting` event is emitted in that case).
        """
        session_dir = resolve_session_directory(workspace_path, self.config.projects_dir)
        state = WatcherState(
            handle=WorkspaceHandle(workspace_id, workspace_path),
            session_dir=session_dir,
        )
        # replace in one step: every displaced state is torn down exactly once
        with self._lock:
            previous = self._states.get(workspace_id)
            self._states[workspace_id] = state
        if previous is not None:
            self._teardown(previous)

        LOGGER.info("Starting tracking for %s (session dir %s)", workspace_id, session_dir)

        with state.pass_lock:
            if state.closed:
                LOGGER.debug("Tracking for %s was replaced before it started", workspace_id)
                return None
            log_path = self._find_log(session_dir)
            if log_path is not None:
                return self._enter_file_watch(state, log_path)

            LOGGER.info("No conversation log for %s yet, watching directory", workspace_id)
            self._enter_directory_watch(state)

        self._emit(state, CONTEXT_WAITING, workspace_id)
        return None

    def stop_tracking(self, workspace_id: str) -> None:
        """Stop tracking a workspace. No-op if it is not tracked.

        After this returns no further events are emitted for the workspace.
        """
        with self._lock:
            state = self._states.pop(workspace_id, None)
        if state is None:
            return
        self._teardown(state)

    def get_context(
        self, workspace_id: str, workspace_path: str
    ) -> ContextMetrics | None:
        """One-off snapshot without installing a watch."""
        session_dir = resolve_session_directory(workspace_path, self.config.projects_dir)
        log_path = self._find_log(session_dir)
        if log_path is None:
            LOGGER.debug("No conversation log for %s", workspace_id)
            return None
        return self._calculate(log_path)

    def get_usage_window(
        self, workspace_path: str, window_hours: float | None = None
    ) -> UsageWindowMetrics | None:
        """Rolling-window usage for the workspace's active log, if any."""
        session_dir = resolve_session_directory(workspace_path, self.config.projects_dir)
        log_path = self._find_log(session_dir)
        if log_path is None:
            return None
        return self.calculator.calculate_usage_window(log_path, window_hours)

    def close(self) -> None:
        """Stop tracking every workspace."""
        with self._lock:
            workspace_ids = list(self._states)
        for workspace_id in workspace_ids:
            self.stop_tracking(workspace_id)

    def is_tracking(self, workspace_id: str) -> bool:
        with self._lock:
            return workspace_id in self._states

    def watch_mode(self, workspace_id: str) -> WatchMode | None:
        with self._lock:
            state = self._states.get(workspace_id)
        return state.mode if state is not None else None

    def tracked_log(self, workspace_id: str) -> SessionLogRef | None:
        with self._lock:
            state = self._states.get(workspace_id)
        return state.log if state is not None else None

    def __enter__(self) -> WorkspaceContextTracker:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # -- state transitions ---------------------------------------------

    def _enter_file_watch(self, state: WatcherState, log_path: Path) -> ContextMetrics:
        """Switch `state` to FILE on `log_path` and emit the first snapshot."""
        try:
            size = log_path.stat().st_size
            offset = complete_length(log_path)
        except OSError as exc:
            LOGGER.warning("Cannot stat %s: %s", log_path, exc)
            size = offset = 0

        state.mode = WatchMode.FILE
        state.log = SessionLogRef(path=log_path, last_known_size=size)
        # a trailing half-written record is read whole on the next pass
        state.offset = offset
        state.watched_dir = log_path.parent

        handler = LogFileHandler(log_path, lambda: self._schedule(state))
        state.file_watcher = self._install_observer(state, log_path.parent, handler)
        LOGGER.info("Watching %s for %s", log_path, state.workspace_id)

        metrics = self._calculate(log_path)
        self._emit(state, CONTEXT_UPDATED, state.workspace_id, metrics)
        return metrics

    def _enter_directory_watch(self, state: WatcherState) -> None:
        state.mode = WatchMode.DIRECTORY
        target = nearest_existing_dir(state.session_dir)
        state.watched_dir = target

        if target == state.session_dir:
            handler: FileSystemEventHandler = LogCreatedHandler(
                self.config.log_extension, lambda _path: self._schedule(state)
            )
        else:
            LOGGER.debug(
                "%s does not exist; watching ancestor %s", state.session_dir, target
            )
            handler = DirectoryCreatedHandler(lambda _path: self._schedule(state))

        state.directory_watcher = self._install_observer(state, target, handler)

        # A log may have landed between the scan and the watch being armed
        if target == state.session_dir and self._find_log(state.session_dir) is not None:
            self._schedule(state)

    def _install_observer(
        self, state: WatcherState, directory: Path, handler: FileSystemEventHandler
    ) -> BaseObserver | None:
        try:
            return self._start_observer(state.workspace_id, directory, handler)
        except WatcherError as exc:
            LOGGER.error("%s", exc)
            self._emit(state, ERROR, state.workspace_id, exc.message)
            return None

    def _start_observer(
        self, workspace_id: str, directory: Path, handler: FileSystemEventHandler
    ) -> BaseObserver:
        observer = self._observer_factory()
        try:
            observer.schedule(handler, str(directory), recursive=False)
            observer.start()
        except OSError as exc:
            _stop_observer(observer)
            raise WatcherError(workspace_id, f"cannot watch {directory}: {exc}") from exc
        return observer

    def _close_watchers(self, state: WatcherState) -> None:
        for observer in state.active_watchers:
            _stop_observer(observer)
        state.file_watcher = None
        state.directory_watcher = None

    def _teardown(self, state: WatcherState) -> None:
        LOGGER.info("Stopping tracking for %s", state.workspace_id)
        with state.timer_lock:
            state.closed = True
            if state.timer is not None:
                state.timer.cancel()
                state.timer = None

        # Waits for an in-flight pass to finish before the handles go away
        with state.pass_lock:
            self._close_watchers(state)

    # -- event handling ------------------------------------------------

    def _schedule(self, state: WatcherState) -> None:
        """(Re)arm the debounce timer; called from observer threads."""
        with state.timer_lock:
            if state.closed:
                return
            if state.timer is not None:
                state.timer.cancel()
            timer = threading.Timer(self.config.debounce_seconds, self._run_pass, args=(state,))
            timer.daemon = True
            state.timer = timer
            timer.start()

    def _run_pass(self, state: WatcherState) -> None:
        with state.pass_lock:
            if not self._is_live(state):
                LOGGER.debug("Dropping late event for %s", state.workspace_id)
                return
            try:
                if state.mode is WatchMode.FILE:
                    self._process_file_change(state)
                else:
                    self._process_directory_change(state)
            except Exception:
                # keep watching; the next filesystem event retries
                LOGGER.exception("Error handling change for %s", state.workspace_id)

    def _process_file_change(self, state: WatcherState) -> None:
        log = state.log
        if log is None:
            return

        try:
            result = read_new_lines(log.path, state.offset)
        except OSError as exc:
            LOGGER.warning("Cannot read %s: %s", log.path, exc)
            return

        state.offset = result.offset
        if not result.lines:
            return

        state.log = SessionLogRef(path=log.path, last_known_size=result.offset)
        LOGGER.debug("%d new lines in %s", len(result.lines), log.path)

        metrics = self._calculate(log.path)
        self._emit(state, CONTEXT_UPDATED, state.workspace_id, metrics)

    def _process_directory_change(self, state: WatcherState) -> None:
        log_path = self._find_log(state.session_dir)
        if log_path is not None:
            LOGGER.info("Conversation log appeared for %s: %s", state.workspace_id, log_path)
            self._close_watchers(state)
            self._enter_file_watch(state, log_path)
            return

        # Session dir (or a nearer ancestor of it) was created: move the watch closer
        if nearest_existing_dir(state.session_dir) != state.watched_dir:
            self._close_watchers(state)
            self._enter_directory_watch(state)

    # -- helpers -------------------------------------------------------

    def _is_live(self, state: WatcherState) -> bool:
        with self._lock:
            current = self._states.get(state.workspace_id)
        return not state.closed and current is state

    def _emit(self, state: WatcherState, event: str, *args: Any) -> None:
        if state.closed:
            return
        self._emitter.emit(event, *args)

    def _find_log(self, session_dir: Path) -> Path | None:
        cfg = self.config
        return find_active_log_file(
            session_dir,
            extension=cfg.log_extension,
            primary_pattern=cfg.primary_log_pattern,
            primary_bonus_seconds=cfg.primary_log_bonus_seconds,
        )

    def _calculate(self, log_path: Path) -> ContextMetrics:
        try:
            return self.calculator.calculate_context(log_path)
        except Exception:
            LOGGER.exception("Error calculating context for %s", log_path)
            return ContextMetrics.empty(self.config.context_limit)


def _stop_observer(observer: BaseObserver) -> None:
    try:
        observer.stop()
        if observer.is_alive() and observer is not threading.current_thread():
            observer.join(timeout=OBSERVER_JOIN_TIMEOUT)
    except RuntimeError as exc:
        LOGGER.debug("Observer shutdown: %s", exc)
