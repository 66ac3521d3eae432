"""Policy catalog loading from YAML."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, Field

from bouncer.enforcer import enforcer_from_dict
from bouncer.matchers import matcher_from_dict
from bouncer.policy import Policy


class PolicyEntry(BaseModel):
    name: str
    active: bool = True
    matcher: dict[str, Any]
    enforcer: dict[str, Any]

    def to_policy(self) -> Policy:
        return Policy(
            name=self.name,
            active=self.active,
            matcher=matcher_from_dict(self.matcher),
            enforcer=enforcer_from_dict(self.enforcer),
        )

    @classmethod
    def from_policy(cls, policy: Policy) -> PolicyEntry:
        return cls(
            name=policy.name,
            active=policy.active,
            matcher=policy.matcher.to_dict(),
            enforcer=policy.enforcer.to_dict(),
        )


class Catalog(BaseModel):
    policies: list[PolicyEntry] = Field(default_factory=list)


def load_catalog(path: str | Path) -> list[Policy]:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Policies file not found: {path}")
    data = yaml.safe_load(p.read_text()) or {}
    if not isinstance(data, dict):
        raise ValueError("policies file must contain a mapping with a 'policies' list")
    catalog = Catalog.model_validate(data)
    return [entry.to_policy() for entry in catalog.policies]


async def load_catalog_async(path: str | Path) -> list[Policy]:
    return await asyncio.to_thread(load_catalog, path)


def save_catalog(policies: list[Policy], path: str | Path) -> None:
    catalog = Catalog(policies=[PolicyEntry.from_policy(policy) for policy in policies])
    Path(path).write_text(yaml.safe_dump(catalog.model_dump(), sort_keys=False))
