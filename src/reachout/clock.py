from __future__ import annotations

import time
from datetime import datetime


class SystemClock:
    """Wall clock for reference times, monotonic clock for TTLs."""

    def now(self) -> datetime:
        return datetime.now()

    def monotonic(self) -> float:
        return time.monotonic()


system_clock = SystemClock()


def as_local(value: datetime) -> datetime:
    """Drop timezone info, converting aware datetimes to local time first."""
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)
