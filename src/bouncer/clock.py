"""Time sources and millisecond arithmetic.

Every timestamp handled by the engine is a timezone-aware ``datetime``;
every duration is an integer number of milliseconds.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Protocol

MS = timedelta(milliseconds=1)
SECOND_MS = 1_000
MINUTE_MS = 60 * SECOND_MS
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS
WEEK_MS = 7 * DAY_MS


def ms_between(later: datetime, earlier: datetime) -> int:
    return (later - earlier) // MS


def shift(time: datetime, ms: float) -> datetime:
    return time + timedelta(milliseconds=ms)


def latest(*times: datetime | None) -> datetime | None:
    present = [t for t in times if t is not None]
    return max(present) if present else None


def earliest(*times: datetime | None) -> datetime | None:
    present = [t for t in times if t is not None]
    return min(present) if present else None


def format_time(time: datetime | None) -> str | None:
    return time.isoformat() if time is not None else None


def parse_time(value: str | None) -> datetime | None:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        raise ValueError(f"timestamp must carry a timezone: {value}")
    return parsed


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock in the local timezone."""

    def now(self) -> datetime:
        return datetime.now().astimezone()


class ManualClock:
    """Clock that only moves when told to. Used for replays and tests."""

    def __init__(self, start: datetime) -> None:
        if start.tzinfo is None:
            raise ValueError("ManualClock requires a timezone-aware start time")
        self._now = start

    def now(self) -> datetime:
        return self._now

    def set(self, time: datetime) -> None:
        self._now = time

    def advance(self, ms: int) -> datetime:
        self._now = shift(self._now, ms)
        return self._now
