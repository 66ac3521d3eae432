"""Limits: stateless strategies that recommend block, unblock and reset actions."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from bouncer.clock import shift
from bouncer.errors import InvariantError, UnknownTypeError, check
from bouncer.page import PageAccess, PageAction, PageActionType, PageMetrics


class Limit(Protocol):
    """A browsing limit applied to a single page.

    ``actions`` recommends what to do at ``time``; recomputing it with no
    intervening page mutation yields no further state change.
    """

    def actions(self, time: datetime, page: PageMetrics) -> list[PageAction]: ...

    def remaining_viewtime(self, time: datetime, page: PageMetrics) -> float: ...

    def remaining_window(self, time: datetime, page: PageMetrics) -> float: ...

    def to_dict(self) -> dict[str, Any]: ...


@dataclass(frozen=True)
class AlwaysBlock:
    def actions(self, time: datetime, page: PageMetrics) -> list[PageAction]:
        if page.access() is PageAccess.BLOCKED:
            return []
        return [PageAction(PageActionType.BLOCK, time)]

    def remaining_viewtime(self, time: datetime, page: PageMetrics) -> float:
        return math.inf

    def remaining_window(self, time: datetime, page: PageMetrics) -> float:
        return math.inf

    def to_dict(self) -> dict[str, Any]:
        return {"type": "AlwaysBlock"}


@dataclass(frozen=True)
class ViewtimeCooldownLimit:
    """An allotment of viewtime, then a block lasting at least ``ms_cooldown``."""

    ms_viewtime: int
    ms_cooldown: int

    def __post_init__(self) -> None:
        check(self.ms_viewtime > 0, f"ms_viewtime must be > 0 (was {self.ms_viewtime})")
        check(self.ms_cooldown > 0, f"ms_cooldown must be > 0 (was {self.ms_cooldown})")

    def actions(self, time: datetime, page: PageMetrics) -> list[PageAction]:
        ms_since_block = page.ms_since_block(time)
        if ms_since_block is not None:
            if ms_since_block >= self.ms_cooldown:
                return [PageAction(PageActionType.UNBLOCK, time)]
            return []

        viewtime = page.ms_viewtime(time)
        if viewtime < self.ms_viewtime:
            return []

        # the budget ran out before the last hide, or just now if never hidden
        over_budget = viewtime - self.ms_viewtime
        ms_since_crossing = (page.ms_since_hide(time) or 0) + over_budget
        crossing = shift(time, -ms_since_crossing)
        if ms_since_crossing < self.ms_cooldown:
            return [PageAction(PageActionType.BLOCK, crossing)]
        if page.is_showing():
            return [PageAction(PageActionType.BLOCK, time)]
        return [PageAction(PageActionType.RESET_VIEWTIME, shift(crossing, self.ms_cooldown))]

    def remaining_viewtime(self, time: datetime, page: PageMetrics) -> float:
        if page.access() is PageAccess.BLOCKED:
            return 0
        return max(0, self.ms_viewtime - page.ms_viewtime(time))

    def remaining_window(self, time: datetime, page: PageMetrics) -> float:
        return math.inf

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "ViewtimeCooldown",
            "data": {"ms_viewtime": self.ms_viewtime, "ms_cooldown": self.ms_cooldown},
        }


@dataclass(frozen=True)
class WindowCooldownLimit:
    """A window of access after the initial visit, then a block lasting at least ``ms_cooldown``."""

    ms_window: int
    ms_cooldown: int

    def __post_init__(self) -> None:
        check(self.ms_window > 0, f"ms_window must be > 0 (was {self.ms_window})")
        check(self.ms_cooldown > 0, f"ms_cooldown must be > 0 (was {self.ms_cooldown})")

    def actions(self, time: datetime, page: PageMetrics) -> list[PageAction]:
        ms_since_block = page.ms_since_block(time)
        if ms_since_block is not None:
            if ms_since_block >= self.ms_cooldown:
                return [PageAction(PageActionType.UNBLOCK, time)]
            return []

        elapsed = page.ms_since_initial_visit(time)
        if elapsed is None or elapsed < self.ms_window:
            return []

        crossing = shift(time, self.ms_window - elapsed)
        if elapsed - self.ms_window < self.ms_cooldown:
            return [PageAction(PageActionType.BLOCK, crossing)]
        if page.is_showing():
            return [PageAction(PageActionType.BLOCK, time)]
        return [PageAction(PageActionType.RESET_INITIALVISIT, shift(crossing, self.ms_cooldown))]

    def remaining_viewtime(self, time: datetime, page: PageMetrics) -> float:
        return math.inf

    def remaining_window(self, time: datetime, page: PageMetrics) -> float:
        if page.access() is PageAccess.BLOCKED:
            return 0
        elapsed = page.ms_since_initial_visit(time)
        if elapsed is None:
            return math.inf
        return max(0, self.ms_window - elapsed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "WindowCooldown",
            "data": {"ms_window": self.ms_window, "ms_cooldown": self.ms_cooldown},
        }


def limit_from_dict(obj: dict[str, Any]) -> Limit:
    tag = obj.get("type")
    data = obj.get("data") or {}
    try:
        if tag == "AlwaysBlock":
            return AlwaysBlock()
        if tag == "ViewtimeCooldown":
            return ViewtimeCooldownLimit(int(data["ms_viewtime"]), int(data["ms_cooldown"]))
        if tag == "WindowCooldown":
            return WindowCooldownLimit(int(data["ms_window"]), int(data["ms_cooldown"]))
    except (KeyError, TypeError) as exc:
        raise InvariantError(f"invalid {tag} limit data: {data!r}") from exc
    raise UnknownTypeError("limit", tag)
