"""Injectable clocks used for scoring windows and OTP expiry."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Protocol


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime.

    SQLite drops tzinfo on round-trip, so naive values read back from the store
    are assumed to already be UTC.
    """

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Clock(Protocol):
    """Source of the current time."""

    def now(self) -> datetime:  # pragma: no cover - Protocol
        ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return utcnow()


class FixedClock:
    """Manually advanced clock for deterministic tests and replays."""

    def __init__(self, start: datetime | None = None) -> None:
        self._lock = threading.Lock()
        self._current = ensure_utc(start) if start else utcnow()

    def now(self) -> datetime:
        with self._lock:
            return self._current

    def set(self, value: datetime) -> None:
        with self._lock:
            self._current = ensure_utc(value)

    def advance(self, *, days: float = 0, hours: float = 0, minutes: float = 0, seconds: float = 0) -> datetime:
        delta = timedelta(days=days, hours=hours, minutes=minutes, seconds=seconds)
        with self._lock:
            self._current = self._current + delta
            return self._current


__all__ = ["Clock", "FixedClock", "SystemClock", "ensure_utc", "utcnow"]
