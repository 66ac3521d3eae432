"""Per-resource ledger of visibility, accrued viewtime and block state."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol

from bouncer.clock import format_time, ms_between, parse_time
from bouncer.errors import InvariantError, SequenceError, UnknownTypeError, check

PAGE_TYPE = "BasicPage"


class PageAccess(str, Enum):
    ALLOWED = "allowed"
    BLOCKED = "blocked"


class PageEvent(str, Enum):
    FRAME_OPEN = "frame_open"
    FRAME_SHOW = "frame_show"
    FRAME_HIDE = "frame_hide"
    TAB_CLOSE = "tab_close"


class PageActionType(str, Enum):
    BLOCK = "block"
    UNBLOCK = "unblock"
    RESET_METRICS = "reset-metrics"
    RESET_INITIALVISIT = "reset-initialvisit"
    RESET_VIEWTIME = "reset-viewtime"


@dataclass(frozen=True)
class PageAction:
    type: PageActionType
    time: datetime


class PageMetrics(Protocol):
    """Read-only view of a page used by limits and schedules."""

    def access(self) -> PageAccess: ...

    def is_showing(self) -> bool: ...

    def ms_since_initial_visit(self, time: datetime) -> int | None: ...

    def ms_viewtime(self, time: datetime) -> int: ...

    def ms_since_block(self, time: datetime) -> int | None: ...

    def ms_since_hide(self, time: datetime) -> int | None: ...

    def ms_since_update(self, time: datetime) -> int | None: ...


@dataclass
class Page:
    """A browsable resource that can be shown, hidden and blocked.

    Viewtime accrues from the moment the first viewer shows the page until
    the last viewer hides it; overlapping viewers extend that window rather
    than counting it twice. A blocked page carries no metrics and ignores
    browse events until it is unblocked.

    Events must arrive in time order. Actions must also arrive in time order
    among themselves, but may be retroactive relative to events, since limits
    reconstruct the moment a budget was crossed after the fact.
    """

    time_initial_visit: datetime | None = None
    ms_viewtime_accrued: int = 0
    time_block: datetime | None = None
    time_last_show: datetime | None = None
    time_last_hide: datetime | None = None
    time_last_update: datetime | None = None
    time_last_action: datetime | None = None
    viewers: set[str] = field(default_factory=set)

    def __post_init__(self) -> None:
        self._check_rep()

    def _check_rep(self) -> None:
        if self.time_block is not None:
            check(self.time_initial_visit is None, "time_initial_visit must be unset while blocked")
            check(self.time_last_show is None, "time_last_show must be unset while blocked")
            check(self.ms_viewtime_accrued == 0, "ms_viewtime_accrued must be 0 while blocked")
            check(not self.viewers, "viewers must be empty while blocked")
        check(self.ms_viewtime_accrued >= 0, "ms_viewtime_accrued cannot be negative")
        check(
            (self.time_last_show is not None) == bool(self.viewers),
            "page is showing exactly when it has viewers",
        )
        if self.time_last_show is not None:
            check(self.time_last_hide is None, "time_last_hide must be unset while showing")

        recorded = (
            self.time_initial_visit,
            self.time_block,
            self.time_last_show,
            self.time_last_hide,
            self.time_last_action,
        )
        if self.time_last_update is None:
            check(all(t is None for t in recorded), "no times can be recorded before the first update")
            check(self.ms_viewtime_accrued == 0, "no viewtime can accrue before the first update")
        else:
            for recorded_time in recorded:
                if recorded_time is not None:
                    check(recorded_time <= self.time_last_update, "recorded times cannot follow the last update")

    def _touch(self, time: datetime) -> None:
        if self.time_last_update is None or time > self.time_last_update:
            self.time_last_update = time

    # Mutations

    def record_event(self, time: datetime, event: PageEvent, viewer: str) -> None:
        if self.time_last_update is not None and time < self.time_last_update:
            raise SequenceError(
                f"event {event.value} at {time.isoformat()} precedes last update {self.time_last_update.isoformat()}"
            )
        if self.access() is PageAccess.BLOCKED:
            return

        if event is PageEvent.FRAME_OPEN:
            updated = self._handle_open(time)
        elif event is PageEvent.FRAME_SHOW:
            updated = self._handle_show(time, viewer)
        elif event in (PageEvent.FRAME_HIDE, PageEvent.TAB_CLOSE):
            updated = self._handle_hide(time, viewer)
        else:
            raise InvariantError(f"unhandled page event {event!r}")

        if updated:
            self._touch(time)
        self._check_rep()

    def _handle_open(self, time: datetime) -> bool:
        if self.time_initial_visit is not None:
            return False
        self.time_initial_visit = time
        return True

    def _handle_show(self, time: datetime, viewer: str) -> bool:
        if viewer in self.viewers:
            return False
        self.viewers.add(viewer)
        if self.time_last_show is None:
            self.time_last_show = time
            self.time_last_hide = None
        if self.time_initial_visit is None:
            self.time_initial_visit = time
        return True

    def _handle_hide(self, time: datetime, viewer: str) -> bool:
        if viewer not in self.viewers:
            return False
        self.viewers.discard(viewer)
        if self.viewers:
            return True
        shown_at = self.time_last_show
        if shown_at is None:
            raise InvariantError("a page with viewers must have a last show time")
        self.ms_viewtime_accrued += max(0, ms_between(time, shown_at))
        self.time_last_show = None
        self.time_last_hide = time
        return True

    def record_action(self, action_type: PageActionType, time: datetime) -> None:
        if self.time_last_action is not None and time < self.time_last_action:
            raise SequenceError(
                f"action {action_type.value} at {time.isoformat()} precedes last action {self.time_last_action.isoformat()}"
            )

        if action_type is PageActionType.BLOCK:
            changed = self._block(time)
        elif action_type is PageActionType.UNBLOCK:
            changed = self._unblock(time)
        elif action_type is PageActionType.RESET_METRICS:
            changed = self._reset_initial_visit(time)
            changed = self._reset_viewtime(time) or changed
        elif action_type is PageActionType.RESET_INITIALVISIT:
            changed = self._reset_initial_visit(time)
        elif action_type is PageActionType.RESET_VIEWTIME:
            changed = self._reset_viewtime(time)
        else:
            raise InvariantError(f"unhandled page action {action_type!r}")

        if changed:
            self.time_last_action = time
            self._touch(time)
        self._check_rep()

    def apply(self, action: PageAction) -> None:
        self.record_action(action.type, action.time)

    def _block(self, time: datetime) -> bool:
        if self.time_block is not None:
            return False
        self.time_block = time
        self.time_initial_visit = None
        self.ms_viewtime_accrued = 0
        self.time_last_show = None
        self.time_last_hide = None
        self.viewers.clear()
        return True

    def _unblock(self, time: datetime) -> bool:
        if self.time_block is None:
            return False
        self.time_block = None
        return True

    def _reset_viewtime(self, time: datetime) -> bool:
        if self.time_block is not None:
            return False
        self.ms_viewtime_accrued = 0
        if self.time_last_show is not None:
            # already accruing; restart from whichever came later
            self.time_last_show = max(time, self.time_last_show)
        return True

    def _reset_initial_visit(self, time: datetime) -> bool:
        if self.time_block is not None:
            return False
        if self.time_last_show is not None:
            self.time_initial_visit = max(time, self.time_last_show)
        else:
            self.time_initial_visit = None
        return True

    # Metrics

    def access(self) -> PageAccess:
        return PageAccess.ALLOWED if self.time_block is None else PageAccess.BLOCKED

    def is_showing(self) -> bool:
        return self.time_last_show is not None

    def ms_since_initial_visit(self, time: datetime) -> int | None:
        return _ms_since(time, self.time_initial_visit)

    def ms_viewtime(self, time: datetime) -> int:
        if self.time_last_show is None:
            return self.ms_viewtime_accrued
        return self.ms_viewtime_accrued + max(0, ms_between(time, self.time_last_show))

    def ms_since_block(self, time: datetime) -> int | None:
        return _ms_since(time, self.time_block)

    def ms_since_hide(self, time: datetime) -> int | None:
        return _ms_since(time, self.time_last_hide)

    def ms_since_update(self, time: datetime) -> int | None:
        return _ms_since(time, self.time_last_update)

    # Serialization

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": PAGE_TYPE,
            "data": {
                "time_initial_visit": format_time(self.time_initial_visit),
                "ms_viewtime_accrued": self.ms_viewtime_accrued,
                "time_block": format_time(self.time_block),
                "time_last_show": format_time(self.time_last_show),
                "time_last_hide": format_time(self.time_last_hide),
                "time_last_update": format_time(self.time_last_update),
                "time_last_action": format_time(self.time_last_action),
                "viewers": sorted(self.viewers),
            },
        }


def _ms_since(time: datetime, since: datetime | None) -> int | None:
    if since is None:
        return None
    return max(0, ms_between(time, since))


def page_from_dict(obj: dict[str, Any]) -> Page:
    tag = obj.get("type")
    if tag != PAGE_TYPE:
        raise UnknownTypeError("page", tag)
    data = obj.get("data") or {}
    try:
        return Page(
            time_initial_visit=parse_time(data.get("time_initial_visit")),
            ms_viewtime_accrued=int(data.get("ms_viewtime_accrued", 0)),
            time_block=parse_time(data.get("time_block")),
            time_last_show=parse_time(data.get("time_last_show")),
            time_last_hide=parse_time(data.get("time_last_hide")),
            time_last_update=parse_time(data.get("time_last_update")),
            time_last_action=parse_time(data.get("time_last_action")),
            viewers=set(data.get("viewers", [])),
        )
    except InvariantError:
        raise
    except (TypeError, ValueError) as exc:
        raise InvariantError(f"invalid page data: {exc}") from exc
