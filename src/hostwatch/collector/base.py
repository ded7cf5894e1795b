"""Snapshot types shared by the samplers, plus command and table helpers."""

from __future__ import annotations

import enum
import logging
import subprocess
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar, Optional, Union

from ..errors import CommandError
from ..units import format_bytes

logger = logging.getLogger(__name__)

MAX_TABLE_ROWS = 20


class MetricKind(str, enum.Enum):
    """Metric kinds, in the order a collection cycle visits them."""

    MEMORY = "memory"
    CPU = "cpu"
    DISK = "disk"
    PROCESS_MANAGER = "processmanager"


@dataclass(frozen=True)
class ProcessInfo:
    """One row of a process listing."""

    pid: int
    name: str
    memory_usage: float
    cpu_usage: float
    command: str


@dataclass(frozen=True)
class FolderInfo:
    """A directory and its share of the enumerated total."""

    path: str
    size: int
    percentage: float


@dataclass(frozen=True)
class ManagedProcess:
    """A process supervised by the external process manager."""

    name: str
    pid: int
    status: str
    cpu: float
    memory: int
    uptime: str
    restarts: int


@dataclass(frozen=True)
class MemorySnapshot:
    kind: ClassVar[MetricKind] = MetricKind.MEMORY

    total: int = 0
    used: int = 0
    free: int = 0
    percentage: float = 0.0
    formatted_total: str = "0 Bytes"
    formatted_used: str = "0 Bytes"
    formatted_free: str = "0 Bytes"
    top_processes: tuple[ProcessInfo, ...] = ()

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> MemorySnapshot:
        procs = tuple(ProcessInfo(**p) for p in data.get("top_processes", []))
        return cls(**{**_known_fields(cls, data), "top_processes": procs})


@dataclass(frozen=True)
class CpuSnapshot:
    kind: ClassVar[MetricKind] = MetricKind.CPU

    percentage: float = 0.0
    load_average: tuple[float, float, float] = (0.0, 0.0, 0.0)
    top_processes: tuple[ProcessInfo, ...] = ()

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> CpuSnapshot:
        procs = tuple(ProcessInfo(**p) for p in data.get("top_processes", []))
        load = tuple(data.get("load_average", (0.0, 0.0, 0.0)))
        return cls(**{**_known_fields(cls, data), "load_average": load, "top_processes": procs})


@dataclass(frozen=True)
class DiskSnapshot:
    kind: ClassVar[MetricKind] = MetricKind.DISK

    path: str = "/"
    total: int = 0
    used: int = 0
    free: int = 0
    percentage: float = 0.0
    formatted_total: str = "0 Bytes"
    formatted_used: str = "0 Bytes"
    formatted_free: str = "0 Bytes"
    top_folders: tuple[FolderInfo, ...] = ()

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> DiskSnapshot:
        folders = tuple(FolderInfo(**f) for f in data.get("top_folders", []))
        return cls(**{**_known_fields(cls, data), "top_folders": folders})


@dataclass(frozen=True)
class ProcessManagerSnapshot:
    kind: ClassVar[MetricKind] = MetricKind.PROCESS_MANAGER

    processes: tuple[ManagedProcess, ...] = ()

    def __bool__(self) -> bool:
        return bool(self.processes)

    def to_payload(self) -> list[dict[str, Any]]:
        return [asdict(p) for p in self.processes]

    @classmethod
    def from_payload(cls, data: list[dict[str, Any]]) -> ProcessManagerSnapshot:
        return cls(processes=tuple(ManagedProcess(**p) for p in data))


MetricSnapshot = Union[MemorySnapshot, CpuSnapshot, DiskSnapshot, ProcessManagerSnapshot]

SNAPSHOT_TYPES: dict[MetricKind, type] = {
    MetricKind.MEMORY: MemorySnapshot,
    MetricKind.CPU: CpuSnapshot,
    MetricKind.DISK: DiskSnapshot,
    MetricKind.PROCESS_MANAGER: ProcessManagerSnapshot,
}


@dataclass(frozen=True)
class CollectedMetrics:
    """Everything one collection cycle produced."""

    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    memory: Optional[MemorySnapshot] = None
    cpu: Optional[CpuSnapshot] = None
    disk: Optional[DiskSnapshot] = None
    processmanager: Optional[ProcessManagerSnapshot] = None

    def snapshots(self) -> list[MetricSnapshot]:
        return [s for s in (self.memory, self.cpu, self.disk, self.processmanager) if s is not None]


def _known_fields(cls: type, data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if k in cls.__dataclass_fields__}


def usage_fields(total: int, used: int, free: int) -> dict[str, Any]:
    """Byte counts plus their percentage and formatted strings."""
    percentage = round(used / total * 100, 2) if total > 0 else 0.0
    return {
        "total": total,
        "used": used,
        "free": free,
        "percentage": percentage,
        "formatted_total": format_bytes(total),
        "formatted_used": format_bytes(used),
        "formatted_free": format_bytes(free),
    }


def run_command(args: list[str], *, check: bool = True) -> str:
    """Run an external command and return its standard output.

    Raises :class:`CommandError` if the binary is missing or, when *check*
    is set, if it exits with a non-zero status.
    """
    try:
        result = subprocess.run(args, capture_output=True, text=True)
    except OSError as exc:
        raise CommandError(args, str(exc)) from exc
    if check and result.returncode != 0:
        raise CommandError(args, f"exit status {result.returncode}: {result.stderr.strip()}")
    return result.stdout


def to_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return 0


def to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def parse_process_table(output: str, *, memory_col: int, cpu_col: int) -> list[ProcessInfo]:
    """Parse ``ps -eo pid,comm,<a>,<b>,command`` output.

    The header line is skipped and at most :data:`MAX_TABLE_ROWS` rows are
    read. Rows with fewer than five columns are dropped; unparseable numbers
    become 0.
    """
    lines = output.strip().splitlines()
    processes: list[ProcessInfo] = []
    for line in lines[1:MAX_TABLE_ROWS + 1]:
        parts = line.split()
        if len(parts) < 5:
            logger.debug("Skipping process row %r", line)
            continue
        processes.append(ProcessInfo(
            pid=to_int(parts[0]),
            name=parts[1],
            memory_usage=to_float(parts[memory_col]),
            cpu_usage=to_float(parts[cpu_col]),
            command=" ".join(parts[4:]),
        ))
    return processes


WMIC_PROCESS_COMMAND = [
    "wmic", "process", "get", "ProcessId,Name,WorkingSetSize,PageFileUsage,CommandLine", "/format:csv",
]


def parse_wmic_process_csv(output: str, *, sort_by_memory: bool = False) -> list[ProcessInfo]:
    """Parse ``wmic process get ... /format:csv`` output.

    Columns are located by header name. ``CommandLine`` is not quoted by
    wmic, so surplus commas in a row are folded back into it. Memory is the
    working set in bytes and CPU usage is not reported (always 0).
    """
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    if not lines:
        return []
    header = lines[0].split(",")
    cmd_col = header.index("CommandLine") if "CommandLine" in header else None

    processes: list[ProcessInfo] = []
    for line in lines[1:]:
        parts = line.split(",")
        extra = len(parts) - len(header)
        if extra < 0 or (extra and cmd_col is None):
            logger.debug("Skipping wmic row %r", line)
            continue
        if extra:
            end = cmd_col + extra + 1
            parts = parts[:cmd_col] + [",".join(parts[cmd_col:end])] + parts[end:]
        row = dict(zip(header, parts))
        processes.append(ProcessInfo(
            pid=to_int(row.get("ProcessId")),
            name=row.get("Name", ""),
            memory_usage=to_float(row.get("WorkingSetSize")),
            cpu_usage=0.0,
            command=row.get("CommandLine", ""),
        ))

    if sort_by_memory:
        processes.sort(key=lambda p: p.memory_usage, reverse=True)
    return processes[:MAX_TABLE_ROWS]
