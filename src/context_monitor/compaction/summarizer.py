"""Conversation summarization backends for compaction."""

from __future__ import annotations

import json
import logging
import subprocess
import time
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Protocol, Sequence

from context_monitor.compaction.prompts import (
    CONTEXT_SECTION_TEMPLATE,
    MESSAGE_TEMPLATE,
    SESSION_SUMMARY_PROMPT,
)
from context_monitor.exceptions import SummarizerError

if TYPE_CHECKING:
    from context_monitor.compaction.models import Message
    from context_monitor.config import MonitorConfig

LOGGER = logging.getLogger(__name__)

MAX_MESSAGE_CHARS = 2000
MAX_CONTEXT_ITEMS = 20


class Summarizer(Protocol):
    """Anything that turns messages into a summary or raises SummarizerError."""

    def summarize(self, messages: Sequence[Message], key_context: Sequence[str]) -> str:
        ...


def _format_time(timestamp_ms: int) -> str:
    if timestamp_ms <= 0:
        return "unknown time"
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


def build_summary_prompt(messages: Sequence[Message], key_context: Sequence[str]) -> str:
    """Render the summarization prompt for `messages`."""
    blocks = []
    for index, msg in enumerate(messages, start=1):
        content = msg.content
        if len(content) > MAX_MESSAGE_CHARS:
            content = content[:MAX_MESSAGE_CHARS] + "\n... [truncated]"
        blocks.append(
            MESSAGE_TEMPLATE.format(
                index=index,
                time=_format_time(msg.timestamp),
                role="User" if msg.role == "user" else "Assistant",
                content=content,
            )
        )

    context_section = ""
    if key_context:
        items = "\n".join(f"- {item}" for item in list(key_context)[:MAX_CONTEXT_ITEMS])
        context_section = CONTEXT_SECTION_TEMPLATE.format(items=items)

    return SESSION_SUMMARY_PROMPT.format(
        count=len(messages),
        conversation="\n\n".join(blocks),
        context_section=context_section,
    )


def extract_summary_text(stdout: str) -> str:
    """
    Pull the summary out of `claude --output-format json` output.

    Accepts a result object (`{"result": "..."}`), a message with text
    content blocks, or a bare JSON string.

    Raises:
        ValueError: If the output is not JSON, reports an error, or is empty.
    """
    data = json.loads(stdout)

    if isinstance(data, str):
        summary = data
    elif isinstance(data, dict):
        if data.get("is_error"):
            raise ValueError(f"CLI reported an error: {data.get('result')}")
        if isinstance(data.get("result"), str):
            summary = data["result"]
        elif isinstance(data.get("content"), list):
            summary = "\n".join(
                block.get("text", "")
                for block in data["content"]
                if isinstance(block, dict) and block.get("type") == "text"
            )
        else:
            raise ValueError("Unrecognized CLI response shape")
    else:
        raise ValueError(f"Unexpected CLI output type: {type(data).__name__}")

    summary = summary.strip()
    if not summary:
        raise ValueError("Empty summary")
    return summary


class ClaudeCliSummarizer:
    """Summarizes by piping the prompt to the `claude` CLI in print mode."""

    def __init__(
        self,
        cli_path: Path | str,
        model: str = "sonnet",
        max_retries: int = 3,
        retry_delay_seconds: float = 1.0,
        timeout: float | None = None,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Initialize CLI summarizer.

        Args:
            cli_path: Path to the claude executable.
            model: Model alias passed via --model.
            max_retries: Retries after the first failed attempt.
            retry_delay_seconds: Base delay; attempt N waits N times this.
            timeout: Optional wall-clock limit per attempt.
            runner: subprocess.run compatible callable.
            sleep: Sleep function between retries.
        """
        self.cli_path = str(cli_path)
        self.model = model
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self.timeout = timeout
        self._run = runner
        self._sleep = sleep

    @classmethod
    def from_config(cls, config: MonitorConfig) -> ClaudeCliSummarizer:
        return cls(
            cli_path=config.claude_cli_path,
            model=config.summary_model,
            max_retries=config.summary_max_retries,
            retry_delay_seconds=config.summary_retry_delay_seconds,
        )

    def command(self) -> list[str]:
        return [self.cli_path, "--print", "--output-format", "json", "--model", self.model]

    def summarize(self, messages: Sequence[Message], key_context: Sequence[str]) -> str:
        prompt = build_summary_prompt(messages, key_context)
        attempts = self.max_retries + 1
        last_error = "no attempts made"

        for attempt in range(attempts):
            if attempt:
                delay = self.retry_delay_seconds * attempt
                LOGGER.warning(
                    "Retrying summary (%d/%d) in %.1fs after: %s",
                    attempt,
                    self.max_retries,
                    delay,
                    last_error,
                )
                self._sleep(delay)

            try:
                completed = self._run(
                    self.command(),
                    input=prompt,
                    capture_output=True,
                    text=True,
                    timeout=self.timeout,
                    check=False,
                )
            except (OSError, subprocess.SubprocessError) as exc:
                last_error = f"cannot run {self.cli_path}: {exc}"
                continue

            if completed.returncode != 0:
                stderr = (completed.stderr or "").strip()
                last_error = f"exit code {completed.returncode}: {stderr[:500]}"
                continue

            try:
                summary = extract_summary_text(completed.stdout or "")
            except ValueError as exc:
                last_error = f"bad output: {exc}"
                continue

            LOGGER.debug("Summary of %d messages: %d chars", len(messages), len(summary))
            return summary

        raise SummarizerError(
            f"Claude CLI summary failed after {attempts} attempts: {last_error}"
        )


def build_summarizer(config: MonitorConfig) -> Summarizer:
    """Summarizer configured from `config`."""
    return ClaudeCliSummarizer.from_config(config)
