"""Sampler set that dispatches sampling by metric kind."""

from __future__ import annotations

import logging

from ..config import MonitorConfig
from .base import MetricKind, MetricSnapshot
from .cpu import CpuSampler
from .disk import DiskSampler
from .memory import MemorySampler
from .process_manager import ProcessManagerSampler

logger = logging.getLogger(__name__)

_SAMPLER_ATTRS = {
    MetricKind.MEMORY: "memory",
    MetricKind.CPU: "cpu",
    MetricKind.DISK: "disk",
    MetricKind.PROCESS_MANAGER: "process_manager",
}


class SamplerSet:
    """Holds one sampler per :class:`MetricKind`.

    The set of kinds is fixed, so dispatch is a plain mapping rather than a
    registry. Samplers never raise; :meth:`sample` always returns a snapshot.
    """

    def __init__(self, config: MonitorConfig) -> None:
        self.memory = MemorySampler()
        self.cpu = CpuSampler()
        self.disk = DiskSampler(config.disk_paths)
        self.process_manager = ProcessManagerSampler()

    def reconfigure(self, config: MonitorConfig) -> None:
        """Apply new disk paths. The CPU baseline is kept."""
        self.disk.set_paths(config.disk_paths)

    def sample(self, kind: MetricKind | str) -> MetricSnapshot:
        kind = MetricKind(kind)
        logger.debug("Sampling %s", kind.value)
        return getattr(self, _SAMPLER_ATTRS[kind]).sample()


def enabled_kinds(config: MonitorConfig) -> list[MetricKind]:
    """Kinds enabled in *config*, in collection order."""
    flags = {
        MetricKind.MEMORY: config.enable_memory,
        MetricKind.CPU: config.enable_cpu,
        MetricKind.DISK: config.enable_disk,
        MetricKind.PROCESS_MANAGER: config.enable_processmanager,
    }
    return [kind for kind in MetricKind if flags[kind]]
