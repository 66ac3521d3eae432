"""Reacts to browse events and frame messages, keeping guards and pages in step."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

import structlog

from bouncer.clock import Clock, SystemClock, earliest
from bouncer.config import settings
from bouncer.controller.active_tabs import ActiveTabs
from bouncer.controller.activity import BrowseActivity
from bouncer.controller.postings import GuardPostings
from bouncer.controller.registry import GuardRegistry
from bouncer.events import (
    NavigateEvent,
    PageResetMessage,
    PoliciesGetMessage,
    PolicyCreateMessage,
    PolicyDeleteMessage,
    PolicyUpdateMessage,
    StatusMessage,
    TabActivateEvent,
    TabRemoveEvent,
)
from bouncer.messages import FrameStatus, FrameStatusMessage, Messenger, PoliciesMessage, PolicyRecord
from bouncer.page import PageAccess, PageEvent
from bouncer.policy import Guard, policy_from_dict

logger = structlog.get_logger(category="controller")


def _union(*groups: Iterable[Guard]) -> list[Guard]:
    seen: dict[str, Guard] = {}
    for group in groups:
        for guard in group:
            seen.setdefault(guard.id, guard)
    return list(seen.values())


class Controller:
    """Event-driven orchestration over guards, postings and active tabs.

    Each handler runs to completion before the next event is processed.
    Guards are always enforced at the event time before any posting or
    visibility change, so stale page state is finalized first.
    """

    def __init__(
        self,
        registry: GuardRegistry,
        messenger: Messenger,
        clock: Clock | None = None,
        postings: GuardPostings | None = None,
        active_tabs: ActiveTabs | None = None,
        activity: BrowseActivity | None = None,
        viewer_id: str | None = None,
    ) -> None:
        self.registry = registry
        self.messenger = messenger
        self.clock = clock or SystemClock()
        self.postings = postings or GuardPostings()
        self.active_tabs = active_tabs or ActiveTabs()
        self.activity = activity or BrowseActivity()
        self.viewer_id = viewer_id or settings.viewer_id

    def dispatch(self, event: object) -> None:
        if isinstance(event, NavigateEvent):
            self.handle_navigate(event)
        elif isinstance(event, TabActivateEvent):
            self.handle_tab_activate(event)
        elif isinstance(event, TabRemoveEvent):
            self.handle_tab_remove(event)
        elif isinstance(event, StatusMessage):
            self.handle_status(event)
        elif isinstance(event, PoliciesGetMessage):
            self.handle_policies_get(event)
        elif isinstance(event, PolicyCreateMessage):
            self.handle_policy_create(event)
        elif isinstance(event, PolicyUpdateMessage):
            self.handle_policy_update(event)
        elif isinstance(event, PolicyDeleteMessage):
            self.handle_policy_delete(event)
        elif isinstance(event, PageResetMessage):
            self.handle_page_reset(event)
        else:
            logger.warning("Dropping unknown event", kind=type(event).__name__)

    def _time(self, event_time: datetime | None) -> datetime:
        return event_time if event_time is not None else self.clock.now()

    # Browse events

    def handle_navigate(self, event: NavigateEvent) -> None:
        time = self._time(event.time)
        self.activity.track(time)
        tab_id, frame_id = event.tab_id, event.frame_id

        from_guards = self.postings.frame(tab_id, frame_id)
        to_guards = self.registry.applicable(event.location.to_browse_location())
        from_ids = {guard.id for guard in from_guards}
        to_ids = {guard.id for guard in to_guards}

        self._enforce(time, _union(from_guards, to_guards))

        for guard in from_guards:
            if guard.id in to_ids:
                continue
            self.postings.dismiss(tab_id, frame_id, guard)
            if not self._is_guarding_active_tab(guard):
                self._apply_event(time, guard, PageEvent.FRAME_HIDE)

        for guard in to_guards:
            if guard.id in from_ids:
                continue
            if not self._is_guarding_active_tab(guard) and self.active_tabs.has(tab_id):
                self._apply_event(time, guard, PageEvent.FRAME_SHOW)
            self.postings.assign(tab_id, frame_id, guard)

        logger.info(
            "Handled navigate",
            tab_id=tab_id,
            frame_id=frame_id,
            url=event.location.url,
            guards=len(to_guards),
        )
        self._message_tab(time, tab_id, extra_frame=frame_id)

    def handle_tab_activate(self, event: TabActivateEvent) -> None:
        time = self._time(event.time)
        self.activity.track(time)
        tab_id = event.tab_id
        # popping a tab out into its own window reports it as its own predecessor
        prev_tab_id = event.prev_tab_id if event.prev_tab_id != tab_id else None

        previous_guards = self.postings.tab(prev_tab_id)
        new_guards = self.postings.tab(tab_id)
        self._enforce(time, _union(previous_guards, new_guards))

        self.active_tabs.add(tab_id)
        self.active_tabs.remove(prev_tab_id)

        for guard in previous_guards:
            if not self._is_guarding_active_tab(guard):
                self._apply_event(time, guard, PageEvent.FRAME_HIDE)
        for guard in new_guards:
            self._apply_event(time, guard, PageEvent.FRAME_SHOW)

        logger.info("Handled tab activate", tab_id=tab_id, prev_tab_id=prev_tab_id)
        self._message_tab(time, tab_id)

    def handle_tab_remove(self, event: TabRemoveEvent) -> None:
        time = self._time(event.time)
        self.activity.track(time)
        tab_id = event.tab_id

        guards = self.postings.tab(tab_id)
        self._enforce(time, guards)

        self.active_tabs.remove(tab_id)
        self.postings.dismiss_tab(tab_id)

        for guard in guards:
            if not self._is_guarding_active_tab(guard):
                self._apply_event(time, guard, PageEvent.TAB_CLOSE)
        logger.info("Handled tab remove", tab_id=tab_id, guards=len(guards))

    # Frame messages

    def handle_status(self, message: StatusMessage) -> None:
        time = self._time(message.time)
        tab_id, frame_id = message.tab_id, message.frame_id
        guards = self.postings.frame(tab_id, frame_id)
        self._enforce(time, guards)

        # a frame reporting in from an active tab is on screen; resume pages whose block was lifted
        if self.active_tabs.has(tab_id):
            for guard in guards:
                page = guard.page
                if guard.active and page.access() is PageAccess.ALLOWED and not page.is_showing():
                    self._apply_event(time, guard, PageEvent.FRAME_SHOW)

        self._message_frame(time, tab_id, frame_id)

    def handle_policies_get(self, message: PoliciesGetMessage) -> None:
        self.messenger.send(message.tab_id, message.frame_id, self._policies_message())

    def handle_policy_create(self, message: PolicyCreateMessage) -> None:
        self.registry.create(policy_from_dict(message.policy))
        self._broadcast_policies()

    def handle_policy_update(self, message: PolicyUpdateMessage) -> None:
        self.registry.update(message.id, policy_from_dict(message.policy))
        self._broadcast_policies()

    def handle_policy_delete(self, message: PolicyDeleteMessage) -> None:
        guard = self.registry.delete(message.id)
        self.postings.dismiss_guard(guard)
        self._broadcast_policies()

    def handle_page_reset(self, message: PageResetMessage) -> None:
        time = self._time(message.time)
        guard = self.registry.reset_page(message.id, time)
        self._broadcast_policies()
        for tab_id, frame_id in self.postings.assignments(guard):
            self._message_frame(time, tab_id, frame_id)

    # Status

    def frame_status(self, time: datetime, tab_id: int, frame_id: int) -> FrameStatusMessage:
        guards = self.postings.frame(tab_id, frame_id)
        if not guards:
            return FrameStatusMessage(status=FrameStatus.UNTRACKED)

        active = [guard for guard in guards if guard.active]
        if any(guard.page.access() is PageAccess.BLOCKED for guard in active):
            return FrameStatusMessage(status=FrameStatus.BLOCKED)

        return FrameStatusMessage(
            status=FrameStatus.ALLOWED,
            viewtime_check=earliest(*(g.policy.next_view_event(time, g.page) for g in active)),
            window_check=earliest(*(g.policy.next_timeline_event(time, g.page) for g in active)),
        )

    # Internals

    def _is_guarding_active_tab(self, guard: Guard) -> bool:
        return self.postings.is_guarding_active_tab(guard, self.active_tabs)

    def _enforce(self, time: datetime, guards: Iterable[Guard]) -> None:
        for guard in guards:
            guard.enforce(time)

    def _apply_event(self, time: datetime, guard: Guard, event: PageEvent) -> None:
        guard.page.record_event(time, event, self.viewer_id)
        guard.enforce(time)

    def _message_frame(self, time: datetime, tab_id: int, frame_id: int) -> None:
        self.messenger.send(tab_id, frame_id, self.frame_status(time, tab_id, frame_id))

    def _message_tab(self, time: datetime, tab_id: int, extra_frame: int | None = None) -> None:
        frames = self.postings.guarded_frames(tab_id)
        if extra_frame is not None and extra_frame not in frames:
            frames.append(extra_frame)
        for frame_id in frames:
            self._message_frame(time, tab_id, frame_id)

    def _policies_message(self) -> PoliciesMessage:
        return PoliciesMessage(policies=[PolicyRecord(**record) for record in self.registry.records()])

    def _broadcast_policies(self) -> None:
        self.messenger.broadcast(self._policies_message())
