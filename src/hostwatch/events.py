"""Subscriber notifications emitted by the monitor."""

from __future__ import annotations

import enum
import logging
import threading
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

Callback = Callable[..., None]


class MonitorEvent(str, enum.Enum):
    INITIALIZED = "initialized"
    STARTED = "started"
    STOPPED = "stopped"
    ERROR = "error"
    METRICS_COLLECTED = "metrics_collected"
    MEMORY_METRICS = "memory_metrics"
    CPU_METRICS = "cpu_metrics"
    DISK_METRICS = "disk_metrics"
    PROCESSMANAGER_METRICS = "processmanager_metrics"

    @classmethod
    def for_kind(cls, kind: Any) -> MonitorEvent:
        """Per-kind event for a metric kind such as ``"disk"``."""
        return cls(f"{getattr(kind, 'value', kind)}_metrics")


_NO_PAYLOAD = object()


class EventBus:
    """Explicit subscriber lists keyed by event name.

    Lifecycle events call subscribers with no arguments; the others pass a
    single payload. A failing subscriber is logged and skipped.
    """

    def __init__(self) -> None:
        self._subscribers: dict[MonitorEvent, list[Callback]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, event: MonitorEvent | str, callback: Callback) -> None:
        with self._lock:
            self._subscribers[MonitorEvent(event)].append(callback)

    def unsubscribe(self, event: MonitorEvent | str, callback: Callback) -> None:
        with self._lock:
            try:
                self._subscribers[MonitorEvent(event)].remove(callback)
            except ValueError:
                pass

    def subscriber_count(self, event: MonitorEvent | str) -> int:
        with self._lock:
            return len(self._subscribers[MonitorEvent(event)])

    def emit(self, event: MonitorEvent | str, payload: Any = _NO_PAYLOAD) -> None:
        event = MonitorEvent(event)
        with self._lock:
            callbacks = list(self._subscribers[event])
        for callback in callbacks:
            try:
                if payload is _NO_PAYLOAD:
                    callback()
                else:
                    callback(payload)
            except Exception:
                logger.exception("Subscriber for %s failed", event.value)
