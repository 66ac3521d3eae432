"""Policies (what to limit, and how) and guards (a policy bound to its page)."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

from bouncer.enforcer import Enforcer, enforcer_from_dict
from bouncer.errors import InvariantError, UnknownTypeError
from bouncer.matchers import BrowseLocation, Matcher, matcher_from_dict
from bouncer.page import Page, page_from_dict


@dataclass
class Policy:
    name: str
    active: bool
    matcher: Matcher
    enforcer: Enforcer

    def applies_to(self, location: BrowseLocation) -> bool:
        return self.active and self.matcher.matches(location)

    def enforce(self, time: datetime, page: Page) -> None:
        self.enforcer.apply_to(time, page)

    def next_view_event(self, time: datetime, page: Page) -> datetime | None:
        return self.enforcer.next_view_event(time, page)

    def next_timeline_event(self, time: datetime, page: Page) -> datetime | None:
        return self.enforcer.next_timeline_event(time, page)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "BasicPolicy",
            "data": {
                "name": self.name,
                "active": self.active,
                "matcher": self.matcher.to_dict(),
                "enforcer": self.enforcer.to_dict(),
            },
        }


def policy_from_dict(obj: dict[str, Any]) -> Policy:
    tag = obj.get("type")
    if tag != "BasicPolicy":
        raise UnknownTypeError("policy", tag)
    data = obj.get("data") or {}
    try:
        return Policy(
            name=str(data["name"]),
            active=bool(data.get("active", True)),
            matcher=matcher_from_dict(data["matcher"]),
            enforcer=enforcer_from_dict(data["enforcer"]),
        )
    except KeyError as exc:
        raise InvariantError(f"BasicPolicy data missing {exc.args[0]!r}") from exc


@dataclass
class Guard:
    """The unit of tracking: one policy watching over one page."""

    id: str
    policy: Policy
    page: Page = field(default_factory=Page)

    @classmethod
    def create(cls, policy: Policy) -> Guard:
        return cls(id=str(uuid4()), policy=policy, page=Page())

    @property
    def active(self) -> bool:
        return self.policy.active

    def enforce(self, time: datetime) -> None:
        self.policy.enforce(time, self.page)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "BasicGuard",
            "data": {
                "id": self.id,
                "policy": self.policy.to_dict(),
                "page": self.page.to_dict(),
            },
        }


def guard_from_dict(obj: dict[str, Any]) -> Guard:
    tag = obj.get("type")
    if tag != "BasicGuard":
        raise UnknownTypeError("guard", tag)
    data = obj.get("data") or {}
    try:
        return Guard(
            id=str(data["id"]),
            policy=policy_from_dict(data["policy"]),
            page=page_from_dict(data["page"]),
        )
    except KeyError as exc:
        raise InvariantError(f"BasicGuard data missing {exc.args[0]!r}") from exc
