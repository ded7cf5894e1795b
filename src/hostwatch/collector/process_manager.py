"""Process-manager sampler - status of applications supervised by pm2."""

from __future__ import annotations

import json
import logging
import shutil
import time
from typing import Any

from ..units import format_uptime
from .base import ManagedProcess, ProcessManagerSnapshot, run_command, to_float, to_int

logger = logging.getLogger(__name__)

PM2_BINARY = "pm2"


def uptime_since(start_ms: Any, now_ms: float | None = None) -> str:
    """Format the time elapsed since *start_ms* (epoch milliseconds)."""
    start = to_float(start_ms) if start_ms else 0.0
    if not start:
        return "0s"
    if now_ms is None:
        now_ms = time.time() * 1000
    return format_uptime(now_ms - start)


def parse_process_list(entries: list[dict[str, Any]], now_ms: float | None = None) -> list[ManagedProcess]:
    """Map ``pm2 jlist`` entries to :class:`ManagedProcess` records."""
    processes: list[ManagedProcess] = []
    for entry in entries:
        env = entry.get("pm2_env") or {}
        monit = entry.get("monit") or {}
        processes.append(ManagedProcess(
            name=entry.get("name") or "",
            pid=to_int(entry.get("pid") or 0),
            status=env.get("status") or "unknown",
            cpu=to_float(monit.get("cpu") or 0),
            memory=to_int(monit.get("memory") or 0),
            uptime=uptime_since(env.get("pm_uptime"), now_ms),
            restarts=to_int(env.get("restart_time") or 0),
        ))
    return processes


class ProcessManagerSampler:
    """Queries pm2 for its managed processes.

    A host without pm2 is not an error: the snapshot is simply empty.
    """

    def __init__(self, binary: str = PM2_BINARY) -> None:
        self._binary = binary

    def available(self) -> bool:
        return shutil.which(self._binary) is not None

    def sample(self) -> ProcessManagerSnapshot:
        if not self.available():
            logger.debug("%s not found on PATH", self._binary)
            return ProcessManagerSnapshot()
        try:
            output = run_command([self._binary, "jlist"])
            entries = json.loads(output)
            if not isinstance(entries, list):
                raise ValueError(f"unexpected {self._binary} jlist payload: {type(entries).__name__}")
            return ProcessManagerSnapshot(processes=tuple(parse_process_list(entries)))
        except Exception:
            logger.warning("Querying %s processes failed", self._binary, exc_info=True)
            return ProcessManagerSnapshot()

    def logs(self, app_name: str | None = None, lines: int = 100) -> str:
        """Return recent log lines for one app (or all apps); empty on failure."""
        args = [self._binary, "logs"]
        if app_name:
            args.append(app_name)
        args += ["--lines", str(lines), "--nostream"]
        try:
            return run_command(args)
        except Exception:
            logger.warning("Reading %s logs failed", self._binary, exc_info=True)
            return ""
