"""SQLite time-series store for metric snapshots."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from .errors import StoreNotInitializedError

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS metrics (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp   TEXT NOT NULL,
    kind        TEXT NOT NULL,
    payload     TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_metrics_timestamp ON metrics(timestamp);
CREATE INDEX IF NOT EXISTS idx_metrics_kind ON metrics(kind);
"""


def _kind_tag(kind: Any) -> str:
    return str(getattr(kind, "value", kind))


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision, so strings sort by time."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")


@dataclass(frozen=True)
class StoredRecord:
    """One persisted row."""

    id: int
    timestamp: str
    kind: str
    payload: str

    @property
    def data(self) -> Any:
        return json.loads(self.payload)

    @property
    def captured_at(self) -> datetime:
        return datetime.fromisoformat(self.timestamp)


class MetricStore:
    """Append-only metric history in a single SQLite table.

    One connection is shared between the collection thread and callers, so
    every operation holds the store lock. Operations before :meth:`open` (or
    after :meth:`close`) raise :class:`StoreNotInitializedError`.
    """

    def __init__(self, location: str | Path) -> None:
        self._location = str(location)
        self._lock = threading.RLock()
        self._conn: sqlite3.Connection | None = None

    @property
    def location(self) -> str:
        return self._location

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def open(self) -> None:
        with self._lock:
            if self._conn is not None:
                return
            if self._location != ":memory:":
                Path(self._location).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self._location, check_same_thread=False)
            try:
                conn.executescript(_SCHEMA)
                conn.commit()
            except sqlite3.Error:
                conn.close()
                raise
            self._conn = conn
        logger.info("MetricStore opened → %s", self._location)

    def _require(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreNotInitializedError()
        return self._conn

    def insert(self, kind: str, payload: Any, timestamp: datetime | None = None) -> int:
        """Persist *payload* under *kind* and return the new row id."""
        stamp = format_timestamp(timestamp or datetime.now(timezone.utc))
        body = json.dumps(payload)
        with self._lock:
            conn = self._require()
            cursor = conn.execute(
                "INSERT INTO metrics (timestamp, kind, payload) VALUES (?, ?, ?)",
                (stamp, _kind_tag(kind), body),
            )
            conn.commit()
            return int(cursor.lastrowid)

    def insert_many(self, rows: list[tuple[str, Any, datetime]]) -> int:
        """Persist ``(kind, payload, timestamp)`` rows in one transaction."""
        params = [(format_timestamp(ts), _kind_tag(kind), json.dumps(payload)) for kind, payload, ts in rows]
        with self._lock:
            conn = self._require()
            conn.executemany(
                "INSERT INTO metrics (timestamp, kind, payload) VALUES (?, ?, ?)",
                params,
            )
            conn.commit()
        return len(params)

    def query(
        self,
        kind: str | None = None,
        limit: int | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[StoredRecord]:
        """Records matching the filters, newest first. Time bounds are inclusive."""
        sql = "SELECT id, timestamp, kind, payload FROM metrics"
        conditions: list[str] = []
        params: list[Any] = []

        if kind:
            conditions.append("kind = ?")
            params.append(_kind_tag(kind))
        if start is not None:
            conditions.append("timestamp >= ?")
            params.append(format_timestamp(start))
        if end is not None:
            conditions.append("timestamp <= ?")
            params.append(format_timestamp(end))

        if conditions:
            sql += " WHERE " + " AND ".join(conditions)
        sql += " ORDER BY timestamp DESC, id DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))

        with self._lock:
            rows = self._require().execute(sql, params).fetchall()
        return [StoredRecord(id=r[0], timestamp=r[1], kind=r[2], payload=r[3]) for r in rows]

    def latest(self, kind: str) -> StoredRecord | None:
        records = self.query(kind, limit=1)
        return records[0] if records else None

    def count(self, kind: str | None = None) -> int:
        sql = "SELECT COUNT(*) FROM metrics"
        params: list[Any] = []
        if kind:
            sql += " WHERE kind = ?"
            params.append(_kind_tag(kind))
        with self._lock:
            row = self._require().execute(sql, params).fetchone()
        return int(row[0]) if row else 0

    def delete_older_than(self, days: float) -> int:
        """Delete records captured strictly before now minus *days*."""
        cutoff = format_timestamp(datetime.now(timezone.utc) - timedelta(days=days))
        with self._lock:
            conn = self._require()
            cursor = conn.execute("DELETE FROM metrics WHERE timestamp < ?", (cutoff,))
            conn.commit()
            deleted = cursor.rowcount or 0
        logger.info("Deleted %d metric records older than %s days", deleted, days)
        return deleted

    def close(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            self._conn.close()
            self._conn = None
        logger.info("MetricStore closed")
