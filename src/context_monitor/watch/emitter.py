"""Subscriber registry for tracker events."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

LOGGER = logging.getLogger(__name__)

CONTEXT_UPDATED = "context-updated"  # (workspace_id, ContextMetrics)
CONTEXT_WAITING = "context-waiting"  # (workspace_id,)
ERROR = "error"  # (workspace_id, message)

EVENTS = frozenset({CONTEXT_UPDATED, CONTEXT_WAITING, ERROR})

Listener = Callable[..., Any]


class EventEmitter:
    """Thread-safe listener registry; a failing listener never blocks the rest."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {name: [] for name in EVENTS}
        self._lock = threading.Lock()

    def on(self, event: str, listener: Listener) -> Listener:
        """Register `listener` for `event`. Returns the listener."""
        self._check(event)
        with self._lock:
            self._listeners[event].append(listener)
        return listener

    def off(self, event: str, listener: Listener) -> None:
        self._check(event)
        with self._lock:
            try:
                self._listeners[event].remove(listener)
            except ValueError:
                pass

    def emit(self, event: str, *args: Any) -> None:
        self._check(event)
        with self._lock:
            listeners = list(self._listeners[event])

        for listener in listeners:
            try:
                listener(*args)
            except Exception:
                LOGGER.exception("Listener for %s failed", event)

    @staticmethod
    def _check(event: str) -> None:
        if event not in EVENTS:
            raise ValueError(f"Unknown event {event!r}; expected one of {sorted(EVENTS)}")
