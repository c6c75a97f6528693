"""Tests for incremental tail reading."""

import pytest

from context_monitor.logs.tail import TailResult, complete_length, read_new_lines


class TestReadNewLines:
    """read_new_lines behavior."""

    def test_reads_complete_lines(self, tmp_path):
        """All complete lines come back with offset at EOF."""
        path = tmp_path / "log.jsonl"
        path.write_bytes(b'{"a": 1}\n{"b": 2}\n')

        result = read_new_lines(path, 0)

        assert result.lines == ['{"a": 1}', '{"b": 2}']
        assert result.offset == path.stat().st_size
        assert result.truncated is False

    def test_only_new_lines_after_offset(self, tmp_path):
        """Lines before the offset are not returned again."""
        path = tmp_path / "log.jsonl"
        path.write_bytes(b"first\n")
        first = read_new_lines(path, 0)

        with open(path, "ab") as f:
            f.write(b"second\n")
        second = read_new_lines(path, first.offset)

        assert second.lines == ["second"]

    def test_unchanged_size_is_empty(self, tmp_path):
        """No growth means no lines and the same offset."""
        path = tmp_path / "log.jsonl"
        path.write_bytes(b"line\n")
        size = path.stat().st_size

        result = read_new_lines(path, size)

        assert result == TailResult(lines=[], offset=size, truncated=False)

    def test_partial_line_left_for_next_call(self, tmp_path):
        """A trailing half-written record is read whole later."""
        path = tmp_path / "log.jsonl"
        path.write_bytes(b'{"a": 1}\n{"b": ')

        first = read_new_lines(path, 0)
        assert first.lines == ['{"a": 1}']
        assert first.offset == len(b'{"a": 1}\n')

        with open(path, "ab") as f:
            f.write(b"2}\n")
        second = read_new_lines(path, first.offset)

        assert second.lines == ['{"b": 2}']

    def test_only_partial_line(self, tmp_path):
        """No newline at all yields nothing and keeps the offset."""
        path = tmp_path / "log.jsonl"
        path.write_bytes(b"no newline yet")

        result = read_new_lines(path, 0)

        assert result.lines == []
        assert result.offset == 0

    def test_truncation_restarts_from_zero(self, tmp_path):
        """A file smaller than the offset is re-read from the start."""
        path = tmp_path / "log.jsonl"
        path.write_bytes(b"one\ntwo\nthree\n")
        offset = path.stat().st_size

        path.write_bytes(b"new\n")
        result = read_new_lines(path, offset)

        assert result.lines == ["new"]
        assert result.offset == 4
        assert result.truncated is True

    def test_blank_and_crlf_lines(self, tmp_path):
        """Blank lines are dropped and CR stripped."""
        path = tmp_path / "log.jsonl"
        path.write_bytes(b"a\r\n\n  \nb\n")

        assert read_new_lines(path, 0).lines == ["a", "b"]

    def test_unicode_line_separator_inside_record(self, tmp_path):
        """U+2028 inside a record does not split it."""
        path = tmp_path / "log.jsonl"
        path.write_bytes('{"t": "x\u2028y"}\n'.encode("utf-8"))

        result = read_new_lines(path, 0)

        assert result.lines == ['{"t": "x\u2028y"}']

    def test_missing_file_raises(self, tmp_path):
        """Callers decide what a vanished file means."""
        with pytest.raises(OSError):
            read_new_lines(tmp_path / "gone.jsonl", 0)

    def test_every_offset_converges(self, tmp_path):
        """From any offset, a second call at the returned offset yields nothing."""
        path = tmp_path / "log.jsonl"
        complete = b'{"a": 1}\n\n{"b": "x\xe2\x80\xa8y"}\r\nplain\n'
        path.write_bytes(complete + b'{"partial": ')
        size = path.stat().st_size

        for offset in range(size + 1):
            first = read_new_lines(path, offset)
            second = read_new_lines(path, first.offset)

            assert first.offset == max(offset, len(complete)), offset
            assert second.lines == [], offset
            assert second.offset == first.offset, offset


class TestCompleteLength:
    """Starting offset for files that may end mid-record."""

    def test_stops_after_last_newline(self, tmp_path):
        path = tmp_path / "log.jsonl"
        path.write_bytes(b'{"a": 1}\n{"b": ')

        assert complete_length(path) == len(b'{"a": 1}\n')

    def test_whole_file_when_newline_terminated(self, tmp_path):
        path = tmp_path / "log.jsonl"
        path.write_bytes(b"one\ntwo\n")

        assert complete_length(path) == 8

    def test_no_newline(self, tmp_path):
        path = tmp_path / "log.jsonl"
        path.write_bytes(b"")
        assert complete_length(path) == 0

        path.write_bytes(b"half a record")
        assert complete_length(path) == 0

    def test_newline_before_last_chunk(self, tmp_path):
        """The scan walks back across chunk boundaries."""
        path = tmp_path / "log.jsonl"
        path.write_bytes(b"line\n" + b"x" * 50)

        assert complete_length(path, chunk_size=8) == 5
