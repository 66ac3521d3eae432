"""Tracks whether, and how recently, browsing has happened."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from bouncer.clock import format_time, parse_time


class BrowseActivity:
    def __init__(self, started: bool = False, latest: datetime | None = None) -> None:
        self._started = started
        self._latest = latest

    @property
    def started(self) -> bool:
        return self._started

    @property
    def latest(self) -> datetime | None:
        return self._latest

    def track(self, time: datetime) -> None:
        """Record activity at ``time``; ``latest`` never moves backwards."""
        self._started = True
        if self._latest is None or self._latest < time:
            self._latest = time

    def to_dict(self) -> dict[str, Any]:
        return {"started": self._started, "latest": format_time(self._latest)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BrowseActivity:
        return cls(started=bool(data.get("started", False)), latest=parse_time(data.get("latest")))
