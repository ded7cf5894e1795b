"""Collection orchestrator: lifecycle, periodic cycles, retention and queries."""

from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from .collector.base import (
    CollectedMetrics,
    CpuSnapshot,
    DiskSnapshot,
    MemorySnapshot,
    MetricKind,
    MetricSnapshot,
    ProcessManagerSnapshot,
)
from .collector.manager import SamplerSet, enabled_kinds
from .config import MonitorConfig
from .events import Callback, EventBus, MonitorEvent
from .retention import RetentionPolicy
from .store import MetricStore

logger = logging.getLogger(__name__)


class MonitorState(enum.Enum):
    CREATED = "created"
    INITIALIZED = "initialized"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass(frozen=True)
class HistoryEntry:
    """A stored snapshot with its capture time decoded."""

    timestamp: datetime
    data: Any


class PeriodicTimer:
    """Handle for a daemon thread that calls *target* every *interval_seconds*.

    The wait starts after each call returns, so calls never overlap.
    """

    def __init__(self, interval_seconds: float, target: Callable[[], Any]) -> None:
        self._interval = interval_seconds
        self._target = target
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._run, name="hostwatch-collector", daemon=True)

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval):
            self._target()

    def start(self) -> None:
        self._thread.start()

    def cancel(self) -> None:
        """Disarm future calls. An in-flight call is left to finish."""
        self._stop_event.set()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not threading.current_thread():
            self._thread.join(timeout)

    @property
    def alive(self) -> bool:
        return self._thread.is_alive() and not self._stop_event.is_set()


def schedule_every(interval_seconds: float, target: Callable[[], Any]) -> PeriodicTimer:
    timer = PeriodicTimer(interval_seconds, target)
    timer.start()
    return timer


class HostMonitor:
    """Samples the host periodically and keeps the results in a :class:`MetricStore`.

    Lifecycle: ``CREATED -> INITIALIZED -> RUNNING -> STOPPED``, and
    ``STOPPED -> RUNNING`` again on :meth:`start`. Subscribers registered
    with :meth:`subscribe` receive the events listed in :class:`MonitorEvent`.

    Usage::

        monitor = HostMonitor(interval=5000, enable_processmanager=False)
        monitor.subscribe("cpu_metrics", lambda snap: print(snap.percentage))
        monitor.start()
        ...
        monitor.stop()
    """

    def __init__(
        self,
        config: MonitorConfig | None = None,
        *,
        store: MetricStore | None = None,
        samplers: SamplerSet | None = None,
        **overrides: Any,
    ) -> None:
        config = config or MonitorConfig()
        if overrides:
            config = config.merged(overrides)
        self._config = config
        self._store = store if store is not None else MetricStore(config.store_location)
        self._samplers = samplers if samplers is not None else SamplerSet(config)
        self._events = EventBus()
        self._state = MonitorState.CREATED
        self._timer: PeriodicTimer | None = None
        self._lock = threading.RLock()
        self._cycle_lock = threading.Lock()

    # -- subscriptions ---------------------------------------------------

    def subscribe(self, event: MonitorEvent | str, callback: Callback) -> Callback:
        """Register *callback* for *event* and return it."""
        self._events.subscribe(event, callback)
        return callback

    def unsubscribe(self, event: MonitorEvent | str, callback: Callback) -> None:
        self._events.unsubscribe(event, callback)

    # -- lifecycle ---------------------------------------------------------

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is MonitorState.RUNNING

    @property
    def store(self) -> MetricStore:
        return self._store

    def initialize(self) -> None:
        """Open the store. Failures are emitted as ``error`` and re-raised."""
        with self._lock:
            try:
                self._store.open()
            except Exception as exc:
                logger.error("Opening metric store %s failed: %s", self._store.location, exc)
                self._events.emit(MonitorEvent.ERROR, exc)
                raise
            if self._state is not MonitorState.RUNNING:
                self._state = MonitorState.INITIALIZED
        logger.info("HostMonitor initialized (store=%s)", self._store.location)
        self._events.emit(MonitorEvent.INITIALIZED)

    def start(self) -> None:
        """Run one cycle now, then keep collecting every ``interval`` ms."""
        with self._lock:
            if self._state is MonitorState.RUNNING:
                return
            if not self._store.is_open:
                self.initialize()
            self._state = MonitorState.RUNNING
        logger.info("HostMonitor started (interval=%dms)", self._config.interval)
        self._events.emit(MonitorEvent.STARTED)

        self.collect_once()

        with self._lock:
            if self._state is MonitorState.RUNNING and self._timer is None:
                self._timer = schedule_every(self._config.interval_seconds, self.collect_once)

    def stop(self) -> None:
        """Disarm the timer and close the store.

        When not running this only closes the store, which is idempotent.
        """
        with self._lock:
            if self._state is not MonitorState.RUNNING:
                self._store.close()
                return
            self._state = MonitorState.STOPPED
            timer, self._timer = self._timer, None
            if timer is not None:
                timer.cancel()
            self._store.close()
        logger.info("HostMonitor stopped")
        self._events.emit(MonitorEvent.STOPPED)

    # -- collection --------------------------------------------------------

    def collect_once(self) -> CollectedMetrics | None:
        """Run one collection cycle.

        Returns what was collected, or None if the cycle failed part way;
        the failure is reported through the ``error`` event. Notifications
        are delivered once the cycle is over, so subscribers may stop,
        restart or reconfigure the monitor.
        """
        pending: list[tuple[MonitorEvent, Any]] = []
        collected: CollectedMetrics | None = None
        with self._cycle_lock:
            config = self._config
            started_at = datetime.now(timezone.utc)
            snapshots: dict[str, Any] = {}
            try:
                for kind in enabled_kinds(config):
                    snapshot = self._samplers.sample(kind)
                    if kind is MetricKind.PROCESS_MANAGER and not snapshot.processes:
                        continue
                    self._store.insert(kind, snapshot.to_payload())
                    snapshots[kind.value] = snapshot
                    pending.append((MonitorEvent.for_kind(kind), snapshot))

                if config.max_records:
                    retention_error = self._enforce_retention(config)
                    if retention_error is not None:
                        pending.append((MonitorEvent.ERROR, retention_error))

                collected = CollectedMetrics(timestamp=started_at, **snapshots)
            except Exception as exc:
                logger.exception("Collection cycle failed")
                pending.append((MonitorEvent.ERROR, exc))

        for event, payload in pending:
            self._events.emit(event, payload)
        if collected is not None:
            self._events.emit(MonitorEvent.METRICS_COLLECTED, collected)
        return collected

    def _enforce_retention(self, config: MonitorConfig) -> Exception | None:
        policy = RetentionPolicy(config.max_records, config.interval)
        try:
            total = self._store.count()
            if not policy.exceeded(total):
                return None
            days = policy.days_to_keep()
            deleted = self._store.delete_older_than(days)
            logger.info(
                "Retention: %d records over cap of %d, removed %d older than %d day(s)",
                total, config.max_records, deleted, days,
            )
        except Exception as exc:
            logger.exception("Retention check failed")
            return exc
        return None

    # -- live queries --------------------------------------------------------

    def sample(self, kind: MetricKind | str) -> MetricSnapshot:
        """Sample *kind* live, bypassing the store."""
        return self._samplers.sample(kind)

    def get_memory_usage(self) -> MemorySnapshot:
        return self._samplers.sample(MetricKind.MEMORY)

    def get_cpu_usage(self) -> CpuSnapshot:
        return self._samplers.sample(MetricKind.CPU)

    def get_disk_usage(self) -> DiskSnapshot:
        return self._samplers.sample(MetricKind.DISK)

    def get_process_manager_processes(self) -> ProcessManagerSnapshot:
        return self._samplers.sample(MetricKind.PROCESS_MANAGER)

    def get_process_manager_logs(self, app_name: str | None = None, lines: int = 100) -> str:
        return self._samplers.process_manager.logs(app_name, lines)

    # -- history -------------------------------------------------------------

    def get_historical_data(
        self,
        kind: MetricKind | str,
        limit: int | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[HistoryEntry]:
        records = self._store.query(MetricKind(kind), limit=limit, start=start, end=end)
        return [HistoryEntry(timestamp=r.captured_at, data=r.data) for r in records]

    def get_latest_metrics(self) -> dict[str, Any]:
        """Latest stored payload per kind, or None where nothing is stored."""
        latest: dict[str, Any] = {}
        for kind in MetricKind:
            record = self._store.latest(kind)
            latest[kind.value] = record.data if record is not None else None
        return latest

    # -- configuration -------------------------------------------------------

    def get_config(self) -> MonitorConfig:
        return self._config

    def update_config(self, changes: Mapping[str, Any] | None = None, **kwargs: Any) -> MonitorConfig:
        """Merge *changes* into the config; a running monitor is restarted."""
        new_config = self._config.merged({**(changes or {}), **kwargs})
        was_running = self.is_running
        if was_running:
            self.stop()

        reopen = False
        with self._lock:
            if new_config.store_location != self._config.store_location:
                reopen = self._store.is_open
                self._store.close()
                self._store = MetricStore(new_config.store_location)
            self._config = new_config
            self._samplers.reconfigure(new_config)
        logger.info("HostMonitor configuration updated: %s", new_config)

        if was_running:
            self.start()
        elif reopen:
            self.initialize()
        return new_config
