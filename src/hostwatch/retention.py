"""Record-count retention policy."""

from __future__ import annotations

import math
from dataclasses import dataclass

MS_PER_DAY = 24 * 60 * 60 * 1000


@dataclass(frozen=True)
class RetentionPolicy:
    """Turns a record cap into an age limit.

    The age limit assumes every record was written at the current interval,
    so the store can end up above or below ``max_records`` if the interval
    changed over its history.
    """

    max_records: int | None
    interval_ms: int

    @property
    def enabled(self) -> bool:
        return bool(self.max_records)

    @property
    def records_per_day(self) -> float:
        return MS_PER_DAY / self.interval_ms

    def exceeded(self, count: int) -> bool:
        return self.enabled and count > self.max_records

    def days_to_keep(self) -> int:
        return max(1, math.floor(self.max_records / self.records_per_day))
