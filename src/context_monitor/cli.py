"""Command-line interface for the workspace context monitor."""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
import threading
from pathlib import Path
from typing import Any, Sequence

import yaml

from .config import MonitorConfig
from .exceptions import ConfigError
from .watch import CONTEXT_UPDATED, CONTEXT_WAITING, ERROR, WorkspaceContextTracker

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Workspace context monitor")
    parser.add_argument("--config", default=None, help="YAML config file")
    parser.add_argument("--projects-dir", default=None, help="Override the session logs root")
    parser.add_argument("--format", choices=("json", "yaml"), default="json", help="Output format")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    snapshot_parser = subparsers.add_parser("snapshot", help="Print current context metrics")
    snapshot_parser.add_argument("workspace_path", help="Workspace directory")

    usage_parser = subparsers.add_parser("usage", help="Print rolling usage-window metrics")
    usage_parser.add_argument("workspace_path", help="Workspace directory")
    usage_parser.add_argument("--hours", type=float, default=None, help="Window length in hours")

    watch_parser = subparsers.add_parser("watch", help="Track a workspace and print updates")
    watch_parser.add_argument("workspace_path", help="Workspace directory")
    watch_parser.add_argument("--workspace-id", default=None, help="Identifier used in events")

    return parser


def load_config(args: argparse.Namespace) -> MonitorConfig:
    config = MonitorConfig.from_yaml(args.config) if args.config else MonitorConfig()
    if args.projects_dir:
        config = dataclasses.replace(config, projects_dir=Path(args.projects_dir))
    return config


def render(data: dict[str, Any], fmt: str) -> str:
    if fmt == "yaml":
        return yaml.safe_dump(data, sort_keys=False).rstrip()
    return json.dumps(data, indent=2)


def snapshot(args: argparse.Namespace, tracker: WorkspaceContextTracker) -> int:
    metrics = tracker.get_context(args.workspace_path, args.workspace_path)
    if metrics is None:
        print(render({"status": "waiting", "workspace_path": args.workspace_path}, args.format))
        return 0
    print(render(metrics.to_dict(), args.format))
    return 0


def usage(args: argparse.Namespace, tracker: WorkspaceContextTracker) -> int:
    metrics = tracker.get_usage_window(args.workspace_path, args.hours)
    if metrics is None:
        print(render({"status": "waiting", "workspace_path": args.workspace_path}, args.format))
        return 0
    print(render(metrics.to_dict(), args.format))
    return 0


def watch(args: argparse.Namespace, tracker: WorkspaceContextTracker) -> int:
    workspace_id = args.workspace_id or args.workspace_path
    print_lock = threading.Lock()

    def emit(event: str, data: dict[str, Any]) -> None:
        with print_lock:
            print(render({"event": event, **data}, args.format), flush=True)

    tracker.on(
        CONTEXT_UPDATED,
        lambda wid, metrics: emit(CONTEXT_UPDATED, {"workspace_id": wid, **metrics.to_dict()}),
    )
    tracker.on(CONTEXT_WAITING, lambda wid: emit(CONTEXT_WAITING, {"workspace_id": wid}))
    tracker.on(ERROR, lambda wid, message: emit(ERROR, {"workspace_id": wid, "message": message}))

    tracker.start_tracking(workspace_id, args.workspace_path)
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        LOGGER.info("Interrupted, stopping")
    return 0


COMMANDS = {"snapshot": snapshot, "usage": usage, "watch": watch}


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )

    try:
        config = load_config(args)
    except ConfigError as exc:
        parser.error(str(exc))

    handler = COMMANDS.get(args.command)
    if handler is None:
        parser.error(f"Unknown command {args.command}")

    with WorkspaceContextTracker(config) as tracker:
        return handler(args, tracker)


if __name__ == "__main__":
    sys.exit(main())
