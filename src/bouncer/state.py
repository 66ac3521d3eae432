"""Snapshot and restore of the complete controller state.

Storing the snapshot is left to the caller; this module only converts
between a live :class:`~bouncer.controller.Controller` and plain data.
"""

from __future__ import annotations

from typing import Any

from bouncer.clock import Clock
from bouncer.controller import ActiveTabs, BrowseActivity, Controller, GuardPostings, GuardRegistry
from bouncer.errors import InvariantError
from bouncer.messages import Messenger
from bouncer.policy import guard_from_dict

SNAPSHOT_VERSION = 1


def snapshot(controller: Controller) -> dict[str, Any]:
    return {
        "version": SNAPSHOT_VERSION,
        "guards": [guard.to_dict() for guard in controller.registry],
        "postings": controller.postings.to_list(),
        "active_tabs": controller.active_tabs.to_list(),
        "activity": controller.activity.to_dict(),
    }


def restore(data: dict[str, Any], messenger: Messenger, clock: Clock | None = None) -> Controller:
    version = data.get("version", SNAPSHOT_VERSION)
    if version != SNAPSHOT_VERSION:
        raise InvariantError(f"unsupported snapshot version {version}")

    guards = [guard_from_dict(record) for record in data.get("guards", [])]
    return Controller(
        registry=GuardRegistry(guards),
        messenger=messenger,
        clock=clock,
        postings=GuardPostings.from_list(data.get("postings", []), guards),
        active_tabs=ActiveTabs.from_list(data.get("active_tabs", [])),
        activity=BrowseActivity.from_dict(data.get("activity", {})),
    )
