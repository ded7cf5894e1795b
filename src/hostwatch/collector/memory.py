"""Memory sampler."""

from __future__ import annotations

import logging
import sys

import psutil

from .base import (
    WMIC_PROCESS_COMMAND,
    MemorySnapshot,
    ProcessInfo,
    parse_process_table,
    parse_wmic_process_csv,
    run_command,
    usage_fields,
)

logger = logging.getLogger(__name__)

_PS_COLUMNS = "pid,comm,%mem,%cpu,command"


def _top_memory_command(platform: str) -> list[str] | None:
    if platform.startswith("linux"):
        return ["ps", "-eo", _PS_COLUMNS, "--sort=-%mem"]
    if platform == "darwin":
        return ["ps", "-Aeo", _PS_COLUMNS, "-m"]
    return None


class MemorySampler:
    """Samples physical memory usage and the processes using the most of it."""

    def __init__(self, platform: str | None = None) -> None:
        self._platform = platform or sys.platform

    def sample(self) -> MemorySnapshot:
        try:
            mem = psutil.virtual_memory()
            total = int(mem.total)
            free = int(mem.available)
        except Exception:
            logger.warning("Reading memory counters failed", exc_info=True)
            total = free = 0

        return MemorySnapshot(
            **usage_fields(total, total - free, free),
            top_processes=tuple(self.top_processes()),
        )

    def top_processes(self) -> list[ProcessInfo]:
        if self._platform == "win32":
            try:
                return parse_wmic_process_csv(run_command(WMIC_PROCESS_COMMAND), sort_by_memory=True)
            except Exception:
                logger.warning("Listing top memory processes failed", exc_info=True)
                return []
        command = _top_memory_command(self._platform)
        if command is None:
            logger.debug("Process listing not supported on %s", self._platform)
            return []
        try:
            output = run_command(command)
            return parse_process_table(output, memory_col=2, cpu_col=3)
        except Exception:
            logger.warning("Listing top memory processes failed", exc_info=True)
            return []
