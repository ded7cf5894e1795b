"""CPU sampler."""

from __future__ import annotations

import logging
import sys

import psutil

from .base import (
    WMIC_PROCESS_COMMAND,
    CpuSnapshot,
    ProcessInfo,
    parse_process_table,
    parse_wmic_process_csv,
    run_command,
)

logger = logging.getLogger(__name__)

_PS_COLUMNS = "pid,comm,%cpu,%mem,command"

# guest and guest_nice are already included in user and nice
_TICK_FIELDS = ("user", "nice", "system", "idle", "iowait", "irq", "softirq", "steal")


def _top_cpu_command(platform: str) -> list[str] | None:
    if platform.startswith("linux"):
        return ["ps", "-eo", _PS_COLUMNS, "--sort=-%cpu"]
    if platform == "darwin":
        return ["ps", "-Aeo", _PS_COLUMNS, "-r"]
    return None


class CpuSampler:
    """Samples CPU usage as a delta against the previous call.

    The first call has no baseline and reports 0%. Every call replaces the
    baseline, so the figure always covers the time since the last sample.
    """

    def __init__(self, platform: str | None = None) -> None:
        self._platform = platform or sys.platform
        self._prev_times: tuple[float, float] | None = None

    def sample(self) -> CpuSnapshot:
        return CpuSnapshot(
            percentage=round(self.usage_percent(), 2),
            load_average=self.load_average(),
            top_processes=tuple(self.top_processes()),
        )

    def _read_times(self) -> tuple[float, float]:
        idle = 0.0
        total = 0.0
        for core in psutil.cpu_times(percpu=True):
            for name in _TICK_FIELDS:
                total += getattr(core, name, 0.0)
            idle += core.idle
        return idle, total

    def usage_percent(self) -> float:
        try:
            current = self._read_times()
        except Exception:
            logger.warning("Reading CPU times failed", exc_info=True)
            return 0.0

        previous = self._prev_times
        self._prev_times = current
        if previous is None:
            return 0.0

        idle_delta = current[0] - previous[0]
        total_delta = current[1] - previous[1]
        if total_delta <= 0:
            return 0.0
        return 100.0 - (100.0 * idle_delta / total_delta)

    def load_average(self) -> tuple[float, float, float]:
        try:
            load1, load5, load15 = psutil.getloadavg()
        except Exception:
            logger.warning("Reading load average failed", exc_info=True)
            return (0.0, 0.0, 0.0)
        return (load1, load5, load15)

    def top_processes(self) -> list[ProcessInfo]:
        if self._platform == "win32":
            # wmic has no per-process CPU figure; rows come back unordered
            try:
                return parse_wmic_process_csv(run_command(WMIC_PROCESS_COMMAND))
            except Exception:
                logger.warning("Listing top CPU processes failed", exc_info=True)
                return []
        command = _top_cpu_command(self._platform)
        if command is None:
            logger.debug("Process listing not supported on %s", self._platform)
            return []
        try:
            output = run_command(command)
            return parse_process_table(output, memory_col=3, cpu_col=2)
        except Exception:
            logger.warning("Listing top CPU processes failed", exc_info=True)
            return []
