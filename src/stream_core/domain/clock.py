"""Clock port.

The store never calls datetime.now() directly; it asks an injected clock, so
tests can pin timestamps.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        """Current time as a timezone-aware UTC datetime."""
        ...


class SystemClock:
    """Wall-clock time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        if start is not None and start.tzinfo is None:
            raise ValueError("FixedClock start must be timezone-aware")
        self._time = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._time

    def set(self, t: datetime) -> None:
        if t.tzinfo is None:
            raise ValueError("FixedClock time must be timezone-aware")
        self._time = t

    def advance(self, delta: timedelta) -> None:
        self._time = self._time + delta
