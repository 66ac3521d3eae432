"""Enforcers: compose a schedule and a limit and apply them to a page."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from bouncer.clock import earliest, shift
from bouncer.errors import InvariantError, UnknownTypeError
from bouncer.limits import Limit, limit_from_dict
from bouncer.page import Page, PageAction
from bouncer.schedules import Schedule, schedule_from_dict


class Enforcer(Protocol):
    def apply_to(self, time: datetime, page: Page) -> None: ...

    def next_view_event(self, time: datetime, page: Page) -> datetime | None: ...

    def next_timeline_event(self, time: datetime, page: Page) -> datetime | None: ...

    def to_dict(self) -> dict[str, Any]: ...


def _in_order(actions: list[PageAction]) -> list[PageAction]:
    return sorted(actions, key=lambda action: action.time)


@dataclass(frozen=True)
class ScheduledLimit:
    """A limit that only applies while its schedule is active.

    Schedule boundary actions are applied first, over the span since the
    page last changed; limit actions follow only when the schedule contains
    ``time``.
    """

    schedule: Schedule
    limit: Limit

    def apply_to(self, time: datetime, page: Page) -> None:
        ms_since_update = page.ms_since_update(time)
        if ms_since_update is not None:
            last_update = shift(time, -ms_since_update)
            for action in _in_order(self.schedule.actions(last_update, time, page)):
                page.apply(action)

        if self.schedule.contains(time):
            for action in _in_order(self.limit.actions(time, page)):
                page.apply(action)

    def next_view_event(self, time: datetime, page: Page) -> datetime | None:
        if not (self.schedule.contains(time) and page.is_showing()):
            return None
        remaining = self.limit.remaining_viewtime(time, page)
        if math.isinf(remaining):
            return None
        return shift(time, remaining)

    def next_timeline_event(self, time: datetime, page: Page) -> datetime | None:
        next_start = self.schedule.next_start(time)
        if not self.schedule.contains(time):
            return next_start
        remaining = self.limit.remaining_window(time, page)
        window_event = None if math.isinf(remaining) else shift(time, remaining)
        return earliest(next_start, window_event)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "ScheduledLimit",
            "data": {"schedule": self.schedule.to_dict(), "limit": self.limit.to_dict()},
        }


def enforcer_from_dict(obj: dict[str, Any]) -> Enforcer:
    tag = obj.get("type")
    if tag == "ScheduledLimit":
        data = obj.get("data") or {}
        try:
            return ScheduledLimit(schedule_from_dict(data["schedule"]), limit_from_dict(data["limit"]))
        except KeyError as exc:
            raise InvariantError(f"ScheduledLimit data missing {exc.args[0]!r}") from exc
    raise UnknownTypeError("enforcer", tag)
