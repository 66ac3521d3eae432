"""In-memory list of guards and the policy CRUD operations on it."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from datetime import datetime
from typing import Any

import structlog

from bouncer.errors import GuardNotFoundError
from bouncer.matchers import BrowseLocation
from bouncer.page import PageActionType
from bouncer.policy import Guard, Policy

logger = structlog.get_logger(category="registry")


class GuardRegistry:
    def __init__(self, guards: Iterable[Guard] = ()) -> None:
        self._guards: dict[str, Guard] = {}
        for guard in guards:
            self._guards[guard.id] = guard

    @classmethod
    def from_policies(cls, policies: Iterable[Policy]) -> GuardRegistry:
        return cls(Guard.create(policy) for policy in policies)

    def __iter__(self) -> Iterator[Guard]:
        return iter(list(self._guards.values()))

    def __len__(self) -> int:
        return len(self._guards)

    def get(self, guard_id: str) -> Guard:
        guard = self._guards.get(guard_id)
        if guard is None:
            raise GuardNotFoundError(f"no guard with id {guard_id}")
        return guard

    def applicable(self, location: BrowseLocation) -> list[Guard]:
        """Guards whose policy is active and matches ``location``."""
        return [guard for guard in self._guards.values() if guard.policy.applies_to(location)]

    def create(self, policy: Policy) -> Guard:
        guard = Guard.create(policy)
        self._guards[guard.id] = guard
        logger.info("Created policy", guard_id=guard.id, name=policy.name)
        return guard

    def update(self, guard_id: str, policy: Policy) -> Guard:
        """Replace a guard's policy; the page and any postings are kept."""
        guard = self.get(guard_id)
        guard.policy = policy
        logger.info("Updated policy", guard_id=guard_id, name=policy.name, active=policy.active)
        return guard

    def delete(self, guard_id: str) -> Guard:
        guard = self.get(guard_id)
        del self._guards[guard_id]
        logger.info("Deleted policy", guard_id=guard_id, name=guard.policy.name)
        return guard

    def reset_page(self, guard_id: str, time: datetime) -> Guard:
        """Lift any block and clear the page's metrics."""
        guard = self.get(guard_id)
        guard.page.record_action(PageActionType.UNBLOCK, time)
        guard.page.record_action(PageActionType.RESET_METRICS, time)
        logger.info("Reset page", guard_id=guard_id, time=time.isoformat())
        return guard

    def records(self) -> list[dict[str, Any]]:
        return [{"id": guard.id, "policy": guard.policy.to_dict()} for guard in self._guards.values()]
