"""Shared pytest fixtures for context-monitor tests."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable

import pytest
from watchdog.observers.polling import PollingObserver

from context_monitor.config import MonitorConfig
from context_monitor.logs.locator import resolve_session_directory

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

WORKSPACE_PATH = "/Users/dev/work/app"

PRIMARY_LOG_NAME = "0f8fad5b-d9cb-469f-a165-70867728950e.jsonl"


def iso(ts: datetime) -> str:
    return ts.isoformat().replace("+00:00", "Z")


def assistant_record(
    ts: datetime,
    input_tokens: int = 0,
    output_tokens: int = 0,
    cache_read: int = 0,
    cache_creation: int = 0,
) -> dict[str, Any]:
    """Assistant log record carrying API usage."""
    return {
        "type": "assistant",
        "timestamp": iso(ts),
        "message": {
            "role": "assistant",
            "content": [{"type": "text", "text": "ok"}],
            "usage": {
                "input_tokens": input_tokens,
                "output_tokens": output_tokens,
                "cache_read_input_tokens": cache_read,
                "cache_creation_input_tokens": cache_creation,
            },
        },
    }


def user_record(ts: datetime, text: str) -> dict[str, Any]:
    return {
        "type": "user",
        "timestamp": iso(ts),
        "message": {"role": "user", "content": text},
    }


def write_jsonl(path: Path, records: list[dict[str, Any]], mode: str = "w") -> Path:
    """Write records as JSON lines (each newline-terminated)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, mode, encoding="utf-8") as f:
        for record in records:
            f.write(json.dumps(record) + "\n")
    return path


@pytest.fixture
def projects_dir(tmp_path: Path) -> Path:
    """Root of per-workspace session directories."""
    path = tmp_path / "projects"
    path.mkdir()
    return path


@pytest.fixture
def config(projects_dir: Path) -> MonitorConfig:
    """Config rooted in tmp_path with a short debounce."""
    return MonitorConfig(projects_dir=projects_dir, debounce_seconds=0.05)


@pytest.fixture
def session_dir(projects_dir: Path) -> Path:
    """Session directory for WORKSPACE_PATH (not created)."""
    return resolve_session_directory(WORKSPACE_PATH, projects_dir)


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: NOW


@pytest.fixture
def polling_observer_factory() -> Callable[[], PollingObserver]:
    """Real watchdog observer that does not depend on inotify limits."""
    return lambda: PollingObserver(timeout=0.05)


def ago(**kwargs: float) -> datetime:
    return NOW - timedelta(**kwargs)
