"""Incremental reading of append-only log files."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

LOGGER = logging.getLogger(__name__)


@dataclass
class TailResult:
    """Completed lines read since the previous offset."""

    lines: list[str] = field(default_factory=list)
    offset: int = 0
    truncated: bool = False


def read_new_lines(path: Path | str, last_offset: int) -> TailResult:
    """
    Read complete lines appended after `last_offset`.

    The file is opened and closed within the call. A trailing line without
    a newline is left unread, and the returned offset points just past the
    last complete line, so a half-written record is picked up whole by the
    next call. Blank lines are dropped.

    If the file shrank below `last_offset` it was truncated or rotated:
    reading restarts at 0 and `truncated` is set.

    Raises:
        OSError: If the file cannot be stat'ed or read.
    """
    size = os.stat(path).st_size

    if size == last_offset:
        return TailResult(offset=last_offset)

    start = last_offset
    truncated = False
    if size < last_offset:
        LOGGER.warning(
            "%s shrank from %d to %d bytes; reading from start", path, last_offset, size
        )
        start = 0
        truncated = True

    with open(path, "rb") as f:
        f.seek(start)
        data = f.read(size - start)

    end = data.rfind(b"\n")
    if end < 0:
        return TailResult(offset=start, truncated=truncated)

    complete = data[: end + 1]
    # split on \n only; JSON strings may carry raw U+2028 which splitlines() breaks on
    lines = [
        line.rstrip("\r")
        for line in complete.decode("utf-8", errors="replace").split("\n")
        if line.strip()
    ]
    return TailResult(lines=lines, offset=start + len(complete), truncated=truncated)


def complete_length(path: Path | str, chunk_size: int = 64 * 1024) -> int:
    """
    Byte length of `path` up to and including its last newline.

    Used as the starting offset for tailing a file that may end in a
    half-written record. Returns 0 when the file holds no newline.

    Raises:
        OSError: If the file cannot be opened or read.
    """
    with open(path, "rb") as f:
        end = f.seek(0, os.SEEK_END)
        while end > 0:
            start = max(0, end - chunk_size)
            f.seek(start)
            chunk = f.read(end - start)
            index = chunk.rfind(b"\n")
            if index >= 0:
                return start + index + 1
            end = start
    return 0
