"""Assignment of guards to (tab, frame) pairs."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import structlog

from bouncer.controller.active_tabs import ActiveTabs
from bouncer.errors import InvariantError, check
from bouncer.policy import Guard

logger = structlog.get_logger(category="postings")


class GuardPostings:
    """Bipartite assignment of guards to frames.

    Guards live in an arena keyed by id. Two index tables refer to them:
    ``tab -> frame -> {guard id}`` and ``guard id -> {tab}``. No entry in
    either table is ever empty, both tables always agree, and the arena holds
    exactly the guards with at least one posting. Every mutation goes through
    :meth:`_check_rep`.
    """

    def __init__(self, postings: Iterable[tuple[int, int, Guard]] = ()) -> None:
        self._tabs_to_guards: dict[int, dict[int, set[str]]] = {}
        self._guards_to_tabs: dict[str, set[int]] = {}
        self._guards: dict[str, Guard] = {}
        for tab_id, frame_id, guard in postings:
            self._post(tab_id, frame_id, guard)
        self._check_rep()

    def _check_rep(self) -> None:
        for tab_id, frames in self._tabs_to_guards.items():
            check(len(frames) > 0, f"tab {tab_id} cannot have 0 frames")
            for frame_id, guard_ids in frames.items():
                check(len(guard_ids) > 0, f"frame {tab_id}-{frame_id} cannot have 0 guards")
                for guard_id in guard_ids:
                    check(
                        tab_id in self._guards_to_tabs.get(guard_id, set()),
                        f"tab {tab_id} points to guard {guard_id}; reverse must be true",
                    )

        for guard_id, tabs in self._guards_to_tabs.items():
            check(len(tabs) > 0, f"guard {guard_id} cannot have 0 tabs")
            for tab_id in tabs:
                frames = self._tabs_to_guards.get(tab_id, {})
                check(
                    any(guard_id in guard_ids for guard_ids in frames.values()),
                    f"guard {guard_id} points to tab {tab_id}; reverse must be true",
                )

        check(
            set(self._guards) == set(self._guards_to_tabs),
            "guard arena must hold exactly the posted guards",
        )

    def _post(self, tab_id: int, frame_id: int, guard: Guard) -> None:
        known = self._guards.get(guard.id)
        if known is not None and known is not guard:
            raise InvariantError(f"a different guard is already posted under id {guard.id}")
        self._guards[guard.id] = guard
        self._tabs_to_guards.setdefault(tab_id, {}).setdefault(frame_id, set()).add(guard.id)
        self._guards_to_tabs.setdefault(guard.id, set()).add(tab_id)

    def _resolve(self, guard_ids: Iterable[str]) -> list[Guard]:
        return [self._guards[guard_id] for guard_id in sorted(guard_ids)]

    # Queries

    def frame(self, tab_id: int, frame_id: int) -> list[Guard]:
        return self._resolve(self._tabs_to_guards.get(tab_id, {}).get(frame_id, set()))

    def tab(self, tab_id: int | None) -> list[Guard]:
        if tab_id is None:
            return []
        frames = self._tabs_to_guards.get(tab_id, {})
        guard_ids: set[str] = set()
        for frame_guards in frames.values():
            guard_ids |= frame_guards
        return self._resolve(guard_ids)

    def guarded_frames(self, tab_id: int) -> list[int]:
        return sorted(self._tabs_to_guards.get(tab_id, {}))

    def assignments(self, guard: Guard) -> list[tuple[int, int]]:
        found: list[tuple[int, int]] = []
        for tab_id in sorted(self._guards_to_tabs.get(guard.id, set())):
            for frame_id, guard_ids in sorted(self._tabs_to_guards.get(tab_id, {}).items()):
                if guard.id in guard_ids:
                    found.append((tab_id, frame_id))
        return found

    def is_guarding_active_tab(self, guard: Guard, active_tabs: ActiveTabs) -> bool:
        return any(active_tabs.has(tab_id) for tab_id in self._guards_to_tabs.get(guard.id, set()))

    def __len__(self) -> int:
        return sum(len(ids) for frames in self._tabs_to_guards.values() for ids in frames.values())

    # Mutations

    def assign(self, tab_id: int, frame_id: int, guard: Guard) -> None:
        logger.debug("Assigning guard", guard_id=guard.id[:7], tab_id=tab_id, frame_id=frame_id)
        self._post(tab_id, frame_id, guard)
        self._check_rep()

    def dismiss(self, tab_id: int, frame_id: int, guard: Guard) -> None:
        logger.debug("Dismissing guard", guard_id=guard.id[:7], tab_id=tab_id, frame_id=frame_id)
        frames = self._tabs_to_guards.get(tab_id)
        if frames is not None and frame_id in frames:
            frames[frame_id].discard(guard.id)
            if not frames[frame_id]:
                del frames[frame_id]
            if not frames:
                del self._tabs_to_guards[tab_id]

        still_in_tab = any(guard.id in ids for ids in self._tabs_to_guards.get(tab_id, {}).values())
        tabs = self._guards_to_tabs.get(guard.id)
        if tabs is not None and not still_in_tab:
            tabs.discard(tab_id)
            if not tabs:
                del self._guards_to_tabs[guard.id]
                del self._guards[guard.id]
        self._check_rep()

    def dismiss_tab(self, tab_id: int) -> None:
        logger.debug("Dismissing all guards from tab", tab_id=tab_id)
        for guard in self.tab(tab_id):
            tabs = self._guards_to_tabs[guard.id]
            tabs.discard(tab_id)
            if not tabs:
                del self._guards_to_tabs[guard.id]
                del self._guards[guard.id]
        self._tabs_to_guards.pop(tab_id, None)
        self._check_rep()

    def dismiss_guard(self, guard: Guard) -> None:
        logger.debug("Dismissing guard from all assignments", guard_id=guard.id[:7])
        for tab_id, frame_id in self.assignments(guard):
            self.dismiss(tab_id, frame_id, guard)

    # Serialization

    def to_list(self) -> list[dict[str, Any]]:
        data: list[dict[str, Any]] = []
        for tab_id, frames in sorted(self._tabs_to_guards.items()):
            for frame_id, guard_ids in sorted(frames.items()):
                for guard_id in sorted(guard_ids):
                    data.append({"tab_id": tab_id, "frame_id": frame_id, "guard_id": guard_id})
        return data

    @classmethod
    def from_list(cls, data: list[dict[str, Any]], guards: Iterable[Guard]) -> GuardPostings:
        by_id = {guard.id: guard for guard in guards}
        postings: list[tuple[int, int, Guard]] = []
        for entry in data:
            guard = by_id.get(entry["guard_id"])
            if guard is None:
                raise InvariantError(f"guard object not found for id {entry['guard_id']}")
            postings.append((int(entry["tab_id"]), int(entry["frame_id"]), guard))
        return cls(postings)
