"""CLI interface for hostwatch."""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import time
from dataclasses import asdict
from datetime import datetime
from typing import Any

from . import __version__
from .collector.base import MetricKind
from .config import HostwatchConfig, load_config
from .monitor import HostMonitor

_KIND_CHOICES = [k.value for k in MetricKind]


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def _apply_overrides(cfg: HostwatchConfig, args: argparse.Namespace) -> HostwatchConfig:
    changes: dict[str, Any] = {}
    if getattr(args, "store", None):
        changes["store_location"] = args.store
    if getattr(args, "interval", None):
        changes["interval"] = args.interval
    if changes:
        cfg.monitor = cfg.monitor.merged(changes)
    return cfg


def _cmd_collect(args: argparse.Namespace, cfg: HostwatchConfig) -> None:
    """Run the collection loop until interrupted."""
    monitor = HostMonitor(cfg.monitor)
    stop = False

    def _handle_signal(_sig: int, _frame: object) -> None:
        nonlocal stop
        stop = True

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    monitor.start()
    print(f"hostwatch collecting every {cfg.monitor.interval}ms → {cfg.monitor.store_location}")
    print("Press Ctrl+C to stop.\n")
    try:
        while not stop:
            time.sleep(0.5)
    finally:
        monitor.stop()
    print("\nCollection stopped.")


def _cmd_snapshot(args: argparse.Namespace, cfg: HostwatchConfig) -> None:
    """Sample one kind live, without touching the store."""
    monitor = HostMonitor(cfg.monitor)
    kind = MetricKind(args.kind)
    if kind is MetricKind.CPU:
        # the first CPU sample only sets the baseline
        monitor.get_cpu_usage()
        time.sleep(args.cpu_window)
    snapshot = monitor.sample(kind)
    _print_json(snapshot.to_payload())


def _cmd_history(args: argparse.Namespace, cfg: HostwatchConfig) -> None:
    monitor = HostMonitor(cfg.monitor)
    monitor.initialize()
    try:
        start = datetime.fromisoformat(args.since) if args.since else None
        end = datetime.fromisoformat(args.until) if args.until else None
        entries = monitor.get_historical_data(args.kind, limit=args.limit, start=start, end=end)
        _print_json([asdict(e) for e in entries])
    finally:
        monitor.stop()


def _cmd_latest(args: argparse.Namespace, cfg: HostwatchConfig) -> None:
    monitor = HostMonitor(cfg.monitor)
    monitor.initialize()
    try:
        _print_json(monitor.get_latest_metrics())
    finally:
        monitor.stop()


def _cmd_logs(args: argparse.Namespace, cfg: HostwatchConfig) -> None:
    monitor = HostMonitor(cfg.monitor)
    print(monitor.get_process_manager_logs(args.app, args.lines), end="")


def _cmd_version(_args: argparse.Namespace, _cfg: HostwatchConfig) -> None:
    print(f"hostwatch {__version__}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hostwatch",
        description="Collect and query host memory, CPU, disk and pm2 metrics",
    )
    parser.add_argument("--config", "-c", default=None, help="Path to hostwatch.yaml")
    parser.add_argument("--store", default=None, help="SQLite store location (overrides config)")
    sub = parser.add_subparsers(dest="command")

    # collect
    collect_p = sub.add_parser("collect", help="Start periodic collection")
    collect_p.add_argument("--interval", type=int, default=None, help="Collection interval in milliseconds")
    collect_p.set_defaults(func=_cmd_collect)

    # snapshot
    snap_p = sub.add_parser("snapshot", help="Print a live snapshot of one metric kind")
    snap_p.add_argument("kind", choices=_KIND_CHOICES)
    snap_p.add_argument("--cpu-window", type=float, default=1.0, help="Seconds between the two CPU samples")
    snap_p.set_defaults(func=_cmd_snapshot)

    # history
    hist_p = sub.add_parser("history", help="Print stored snapshots, newest first")
    hist_p.add_argument("kind", choices=_KIND_CHOICES)
    hist_p.add_argument("--limit", type=int, default=10, help="Maximum number of records")
    hist_p.add_argument("--since", default=None, help="ISO-8601 lower bound (inclusive)")
    hist_p.add_argument("--until", default=None, help="ISO-8601 upper bound (inclusive)")
    hist_p.set_defaults(func=_cmd_history)

    # latest
    latest_p = sub.add_parser("latest", help="Print the latest stored snapshot of every kind")
    latest_p.set_defaults(func=_cmd_latest)

    # logs
    logs_p = sub.add_parser("logs", help="Print recent pm2 log lines")
    logs_p.add_argument("app", nargs="?", default=None, help="pm2 app name (all apps if omitted)")
    logs_p.add_argument("--lines", type=int, default=100, help="Number of lines")
    logs_p.set_defaults(func=_cmd_logs)

    # version
    ver_p = sub.add_parser("version", help="Print version")
    ver_p.set_defaults(func=_cmd_version)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Entry point for the hostwatch CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    cfg = _apply_overrides(load_config(args.config), args)
    logging.basicConfig(
        level=getattr(logging, cfg.logging.level.upper(), logging.INFO),
        format=cfg.logging.format,
    )

    args.func(args, cfg)


if __name__ == "__main__":
    main()
