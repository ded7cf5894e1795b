"""hostwatch - periodic host metrics collection with a local time series."""

from .collector.base import (
    CollectedMetrics,
    CpuSnapshot,
    DiskSnapshot,
    MemorySnapshot,
    MetricKind,
    ProcessManagerSnapshot,
)
from .config import HostwatchConfig, MonitorConfig, load_config
from .events import MonitorEvent
from .monitor import HostMonitor, MonitorState
from .store import MetricStore, StoredRecord

__version__ = "0.1.0"

__all__ = [
    "CollectedMetrics",
    "CpuSnapshot",
    "DiskSnapshot",
    "HostMonitor",
    "HostwatchConfig",
    "MemorySnapshot",
    "MetricKind",
    "MetricStore",
    "MonitorConfig",
    "MonitorEvent",
    "MonitorState",
    "ProcessManagerSnapshot",
    "StoredRecord",
    "load_config",
]
