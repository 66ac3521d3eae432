"""Schedules: when a limit applies, and what happens at schedule boundaries."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from bouncer.clock import earliest, latest
from bouncer.errors import InvariantError, UnknownTypeError, check
from bouncer.page import PageAccess, PageAction, PageActionType, PageMetrics
from bouncer.period import Period, PeriodicInterval


class Schedule(Protocol):
    def contains(self, time: datetime) -> bool: ...

    def actions(self, start: datetime, end: datetime, page: PageMetrics) -> list[PageAction]:
        """Actions for boundary crossings strictly after ``start`` and at or before ``end``."""
        ...

    def next_start(self, time: datetime) -> datetime | None: ...

    def to_dict(self) -> dict[str, Any]: ...


@dataclass(frozen=True)
class AlwaysSchedule:
    def contains(self, time: datetime) -> bool:
        return True

    def actions(self, start: datetime, end: datetime, page: PageMetrics) -> list[PageAction]:
        return []

    def next_start(self, time: datetime) -> datetime | None:
        return None

    def to_dict(self) -> dict[str, Any]:
        return {"type": "AlwaysSchedule"}


@dataclass(frozen=True)
class PeriodicSchedule:
    """A schedule made of non-overlapping intervals that repeat on one period.

    Entering or leaving an interval resets the page's metrics; leaving an
    interval also lifts any block imposed during it.
    """

    intervals: tuple[PeriodicInterval, ...]

    def __post_init__(self) -> None:
        # accept any iterable but store a tuple so equality and hashing work
        object.__setattr__(self, "intervals", tuple(self.intervals))
        check(len(self.intervals) > 0, "intervals must be non-empty")
        period = self.intervals[0].period
        for interval in self.intervals:
            check(
                interval.period == period,
                f"all intervals must share period {period.value} (found {interval.period.value})",
            )
        for i, a in enumerate(self.intervals):
            for b in self.intervals[i + 1:]:
                check(not a.overlaps(b), f"intervals cannot overlap (found {a.to_dict()} and {b.to_dict()})")

    @property
    def period(self) -> Period:
        return self.intervals[0].period

    def contains(self, time: datetime) -> bool:
        return any(interval.contains(time) for interval in self.intervals)

    def actions(self, start: datetime, end: datetime, page: PageMetrics) -> list[PageAction]:
        latest_start = latest(*(i.latest_start(start, end) for i in self.intervals))
        latest_end = latest(*(i.latest_end(start, end) for i in self.intervals))

        if page.access() is PageAccess.ALLOWED:
            crossing = latest(latest_start, latest_end)
            if crossing is None:
                return []
            return [PageAction(PageActionType.RESET_METRICS, crossing)]

        if latest_end is None:
            return []
        actions = [PageAction(PageActionType.UNBLOCK, latest_end)]
        # an unblock already clears metrics; only a later start needs another reset
        if latest_start is not None and latest_start >= latest_end:
            actions.append(PageAction(PageActionType.RESET_METRICS, latest_start))
        return actions

    def next_start(self, time: datetime) -> datetime | None:
        return earliest(*(interval.next_start(time) for interval in self.intervals))

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "PeriodicSchedule",
            "data": {"intervals": [interval.to_dict() for interval in self.intervals]},
        }


def schedule_from_dict(obj: dict[str, Any]) -> Schedule:
    tag = obj.get("type")
    if tag == "AlwaysSchedule":
        return AlwaysSchedule()
    if tag == "PeriodicSchedule":
        data = obj.get("data") or {}
        intervals = data.get("intervals")
        if not isinstance(intervals, list):
            raise InvariantError(f"PeriodicSchedule intervals must be a list (was {intervals!r})")
        return PeriodicSchedule(tuple(PeriodicInterval.from_dict(i) for i in intervals))
    raise UnknownTypeError("schedule", tag)
