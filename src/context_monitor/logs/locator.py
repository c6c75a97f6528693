"""Locate Claude Code session logs for a workspace."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path

from context_monitor.config import DEFAULT_PROJECTS_DIR, PRIMARY_LOG_PATTERN

LOGGER = logging.getLogger(__name__)

_SEPARATORS = re.compile(r"[\\/.]")


def session_dir_name(workspace_path: str) -> str:
    """Map a workspace path to its session directory name.

    /Users/me/work/app/.conductor/vienna -> -Users-me-work-app--conductor-vienna
    """
    return _SEPARATORS.sub("-", str(workspace_path))


def resolve_session_directory(
    workspace_path: str,
    projects_dir: Path | str = DEFAULT_PROJECTS_DIR,
) -> Path:
    """Return the session directory for a workspace. Never touches disk."""
    return Path(projects_dir) / session_dir_name(workspace_path)


def find_active_log_file(
    directory: Path | str,
    *,
    extension: str = ".jsonl",
    primary_pattern: str = PRIMARY_LOG_PATTERN,
    primary_bonus_seconds: float = 1.0,
) -> Path | None:
    """
    Find the most recently active log file in a session directory.

    Ranking uses mtime; files matching `primary_pattern` get a fixed bonus
    so the main conversation wins near-ties against agent logs.

    Args:
        directory: Session directory (may not exist).
        extension: Log file extension to consider.
        primary_pattern: Regex for the primary conversation file name.
        primary_bonus_seconds: Bonus added to primary file mtimes.

    Returns:
        Path to the active log, or None if the directory is missing or empty.
    """
    directory = Path(directory)
    try:
        names = os.listdir(directory)
    except FileNotFoundError:
        return None
    except OSError as exc:
        LOGGER.warning("Cannot list session directory %s: %s", directory, exc)
        return None

    primary = re.compile(primary_pattern)
    best: Path | None = None
    best_time = float("-inf")

    for name in names:
        if not name.endswith(extension):
            continue
        path = directory / name
        try:
            stat = path.stat()
        except OSError as exc:
            LOGGER.warning("Skipping %s: %s", path, exc)
            continue

        effective = stat.st_mtime
        if primary.match(name):
            effective += primary_bonus_seconds

        if effective > best_time:
            best_time = effective
            best = path

    return best
