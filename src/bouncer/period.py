"""Arithmetic for moments and ranges that repeat every minute, hour, day or week."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from bouncer.clock import DAY_MS, HOUR_MS, MINUTE_MS, SECOND_MS, WEEK_MS, shift
from bouncer.errors import InvariantError, check

DAY_NAMES = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")


class Period(str, Enum):
    MINUTE = "minute"
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"

    @property
    def ms(self) -> int:
        return _PERIOD_MS[self]

    def start(self, time: datetime) -> datetime:
        """Start of the period enclosing ``time``, in ``time``'s own timezone.

        Weeks start on Sunday at midnight.
        """
        if self is Period.MINUTE:
            return time.replace(second=0, microsecond=0)
        if self is Period.HOUR:
            return time.replace(minute=0, second=0, microsecond=0)
        midnight = time.replace(hour=0, minute=0, second=0, microsecond=0)
        if self is Period.DAY:
            return midnight
        days_since_sunday = (time.weekday() + 1) % 7
        return midnight - timedelta(days=days_since_sunday)


_PERIOD_MS = {
    Period.MINUTE: MINUTE_MS,
    Period.HOUR: HOUR_MS,
    Period.DAY: DAY_MS,
    Period.WEEK: WEEK_MS,
}

# largest field first
_FIELDS = ("day", "hour", "minute", "second")
_FIELD_PERIOD = {
    "day": Period.WEEK,
    "hour": Period.DAY,
    "minute": Period.HOUR,
    "second": Period.MINUTE,
}
_FIELD_BOUNDS = {
    "day": (0, 6),
    "hour": (0, 23),
    "minute": (0, 59),
    "second": (0, 59),
}
_FIELD_MS = {
    "day": DAY_MS,
    "hour": HOUR_MS,
    "minute": MINUTE_MS,
    "second": SECOND_MS,
}


@dataclass(frozen=True)
class PeriodicTime:
    """A time that recurs once per period.

    The largest populated field decides the period (``day`` repeats weekly,
    ``hour`` daily, ``minute`` hourly, ``second`` every minute), and every
    field below it must be populated too.
    """

    day: int | None = None
    hour: int | None = None
    minute: int | None = None
    second: int | None = None

    def __post_init__(self) -> None:
        populated = [name for name in _FIELDS if getattr(self, name) is not None]
        check(bool(populated), "no time fields specified")
        largest = _FIELDS.index(populated[0])
        for name in _FIELDS[largest:]:
            value = getattr(self, name)
            check(value is not None, f"field {name} must be defined")
            low, high = _FIELD_BOUNDS[name]
            check(low <= value <= high, f"invalid {name} value {value}")

    @classmethod
    def from_string(cls, value: str) -> PeriodicTime:
        """Parse ``"Mon 23:56:12"``, ``"08:34:00"``, ``"00:00"`` or ``"30"``."""
        text = value.strip()
        day: int | None = None
        if " " in text:
            day_name, _, text = text.partition(" ")
            day = _parse_day(day_name)
            text = text.strip()
        parts = text.split(":")
        if len(parts) > 3 or (day is not None and len(parts) != 3):
            raise InvariantError(f"invalid periodic time {value!r}")
        try:
            numbers = [int(part) for part in parts]
        except ValueError as exc:
            raise InvariantError(f"invalid periodic time {value!r}") from exc
        names = ("hour", "minute", "second")[-len(numbers):]
        return cls(day=day, **dict(zip(names, numbers)))

    def __str__(self) -> str:
        pieces = [f"{getattr(self, name):02d}" for name in _FIELDS[1:] if getattr(self, name) is not None]
        clock = ":".join(pieces)
        if self.day is None:
            return clock
        return f"{DAY_NAMES[self.day]} {clock}"

    @property
    def period(self) -> Period:
        for name in _FIELDS:
            if getattr(self, name) is not None:
                return _FIELD_PERIOD[name]
        raise InvariantError("no time fields specified")

    def offset_ms(self) -> int:
        return sum((getattr(self, name) or 0) * _FIELD_MS[name] for name in _FIELDS)

    def prev(self, time: datetime, inclusive: bool = True) -> datetime:
        """Nearest occurrence at or before ``time`` (strictly before if not inclusive)."""
        period = self.period
        candidate = shift(period.start(time), self.offset_ms())
        too_late = candidate > time if inclusive else candidate >= time
        if too_late:
            return shift(candidate, -period.ms)
        return candidate

    def next(self, time: datetime, inclusive: bool = True) -> datetime:
        """Nearest occurrence at or after ``time`` (strictly after if not inclusive)."""
        period = self.period
        candidate = shift(period.start(time), self.offset_ms())
        too_early = candidate < time if inclusive else candidate <= time
        if too_early:
            return shift(candidate, period.ms)
        return candidate


def _parse_day(name: str) -> int:
    for index, day_name in enumerate(DAY_NAMES):
        if day_name.upper() == name.upper():
            return index
    raise InvariantError(f"invalid day {name!r}")


@dataclass(frozen=True)
class PeriodicInterval:
    """A repeating range ``[start, end)``; ``start >= end`` wraps around the period boundary."""

    start: PeriodicTime
    end: PeriodicTime

    def __post_init__(self) -> None:
        check(
            self.start.period == self.end.period,
            f"period of bounds must match; got [{self.start.period.value}, {self.end.period.value})",
        )

    @classmethod
    def from_strings(cls, start: str, end: str) -> PeriodicInterval:
        return cls(PeriodicTime.from_string(start), PeriodicTime.from_string(end))

    @property
    def period(self) -> Period:
        return self.start.period

    def overlaps(self, other: PeriodicInterval) -> bool:
        """Whether two intervals of the same period share any moment."""
        period_ms = self.period.ms
        start = self.start.offset_ms()
        end = self.end.offset_ms()
        if start >= end:
            end += period_ms

        other_start = other.start.offset_ms()
        other_end = other.end.offset_ms()
        if other_start >= other_end:
            other_end += period_ms

        # both ranges are unwrapped into [0, 2 * period), so one period of shift either way covers every alignment
        for shift_ms in (-period_ms, 0, period_ms):
            a, b = other_start + shift_ms, other_end + shift_ms
            if (start <= a < end) or (start < b <= end) or (a <= start and end <= b):
                return True
        return False

    def contains(self, time: datetime) -> bool:
        interval_start = self.start.prev(time)
        interval_end = self.end.next(time, inclusive=False)
        return interval_end - interval_start <= timedelta(milliseconds=self.period.ms)

    def latest_start(self, after: datetime, upto: datetime) -> datetime | None:
        """Latest occurrence of the start bound within ``(after, upto]``."""
        occurrence = self.start.prev(upto)
        return occurrence if occurrence > after else None

    def latest_end(self, after: datetime, upto: datetime) -> datetime | None:
        """Latest occurrence of the end bound within ``(after, upto]``."""
        occurrence = self.end.prev(upto)
        return occurrence if occurrence > after else None

    def next_start(self, time: datetime) -> datetime:
        return self.start.next(time, inclusive=False)

    def to_dict(self) -> dict[str, str]:
        return {"start": str(self.start), "end": str(self.end)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PeriodicInterval:
        try:
            return cls.from_strings(str(data["start"]), str(data["end"]))
        except (KeyError, TypeError) as exc:
            raise InvariantError(f"invalid periodic interval {data!r}") from exc
