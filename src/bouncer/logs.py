"""Structured logging setup and the bounded in-memory log buffer."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import MutableMapping
from typing import Any

import structlog

from bouncer.config import settings


class MemoryLogs:
    """structlog processor that keeps the most recent log entries in memory.

    The buffer holds at most ``max_logs`` entries; older ones are evicted
    first. Entries pass through unchanged to the next processor.
    """

    def __init__(self, max_logs: int | None = None) -> None:
        self.max_logs = max_logs if max_logs is not None else settings.max_logs
        self._entries: deque[dict[str, Any]] = deque(maxlen=self.max_logs)

    def __call__(self, logger: Any, method_name: str, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
        entry = {
            "timestamp": event_dict.get("timestamp"),
            "level": event_dict.get("level", method_name),
            "event": event_dict.get("event"),
        }
        category = event_dict.get("category")
        if category is not None:
            entry["category"] = category
        context = {
            key: value
            for key, value in event_dict.items()
            if key not in {"timestamp", "level", "event", "category"}
        }
        if context:
            entry["context"] = context
        self._entries.append(entry)
        return event_dict

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self) -> list[dict[str, Any]]:
        return list(self._entries)

    def flush(self) -> list[dict[str, Any]]:
        """Return every buffered entry and empty the buffer."""
        flushed = list(self._entries)
        self._entries.clear()
        return flushed


def _level_number(level: str) -> int:
    mapping = logging.getLevelNamesMapping()
    try:
        return mapping[level.upper()]
    except KeyError as exc:
        raise ValueError(f"Unknown log level: {level}") from exc


def configure_logging(
    level: str | None = None,
    fmt: str | None = None,
    memory: MemoryLogs | None = None,
) -> MemoryLogs:
    """Configure structlog for the process and return the memory buffer in use."""
    level = level or settings.log_level
    fmt = fmt or settings.log_format
    memory = memory if memory is not None else MemoryLogs()

    if fmt == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    elif fmt == "console":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        raise ValueError(f"Unknown log format: {fmt}")

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            memory,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_level_number(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )
    return memory
