"""Injectable UTC clock and RFC 3339 timestamp helpers."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta

# Returned by parse_timestamp when the text is not RFC 3339.
ZERO_TIME = datetime.min.replace(tzinfo=UTC)

_RESOLUTION = timedelta(microseconds=1)


class Clock(ABC):
    """Source of wall-clock UTC timestamps for entities."""

    @abstractmethod
    def now(self) -> datetime: ...


class SystemClock(Clock):
    """System time, forced strictly monotonic at microsecond resolution.

    Two consecutive reads never return the same instant, so every entity
    mutator observably advances ``updated_at``.
    """

    def __init__(self) -> None:
        self._last = ZERO_TIME
        self._lock = threading.Lock()

    def now(self) -> datetime:
        current = datetime.now(UTC)
        with self._lock:
            if current <= self._last:
                current = self._last + _RESOLUTION
            self._last = current
            return current


class ManualClock(Clock):
    """Deterministic clock that advances by ``step`` on every read."""

    def __init__(self, start: datetime | None = None, step: timedelta = timedelta(seconds=1)) -> None:
        if step <= timedelta(0):
            raise ValueError("ManualClock step must be positive")
        self._current = start or datetime(2026, 1, 1, tzinfo=UTC)
        self._step = step

    def now(self) -> datetime:
        value = self._current
        self._current = value + self._step
        return value

    def advance(self, delta: timedelta) -> None:
        self._current += delta


_default_clock: Clock = SystemClock()


def get_clock() -> Clock:
    return _default_clock


def utc_now() -> datetime:
    """Current time from the process default clock."""
    return _default_clock.now()


@contextmanager
def use_clock(clock: Clock) -> Iterator[Clock]:
    """Temporarily replace the process default clock."""
    global _default_clock
    previous = _default_clock
    _default_clock = clock
    try:
        yield clock
    finally:
        _default_clock = previous


def format_timestamp(value: datetime) -> str:
    """Render a datetime as RFC 3339 UTC text with microseconds, e.g. ``2026-01-02T03:04:05.000000Z``.

    Naive datetimes are taken to be UTC already.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).replace(tzinfo=None).isoformat(timespec="microseconds") + "Z"


def parse_timestamp(text: str | None) -> datetime:
    """Parse RFC 3339 text into an aware UTC datetime; ZERO_TIME if it cannot be parsed."""
    if not text:
        return ZERO_TIME
    candidate = text.strip()
    if "T" not in candidate and "t" not in candidate:
        return ZERO_TIME
    if candidate.endswith(("Z", "z")):
        candidate = candidate[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        return ZERO_TIME
    if parsed.tzinfo is None:
        return ZERO_TIME
    return parsed.astimezone(UTC)
