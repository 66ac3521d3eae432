"""Single-flight synchronization for lazily-initialized shared state."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

import structlog

logger = structlog.get_logger(category="sync")

T = TypeVar("T")


class Synchronizer:
    """Runs submitted coroutines one at a time, in submission order.

    ``asyncio.Lock`` wakes waiters in FIFO order, so callers observe the
    effects of every earlier submission.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()

    async def sync(self, func: Callable[[], Awaitable[T]]) -> T:
        async with self._lock:
            return await func()


class SyncedCache(Generic[T]):
    """A value loaded once by ``initializer`` and shared by every caller.

    Concurrent callers of :meth:`value` before the first load completes all
    wait on the same synchronizer; the initializer runs exactly once.
    """

    def __init__(self, initializer: Callable[[], Awaitable[T]], sync: Synchronizer | None = None) -> None:
        self._initializer = initializer
        self._sync = sync or Synchronizer()
        self._value: T | None = None
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def value(self) -> T:
        if not self._initialized:
            await self._sync.sync(self._initialize_once)
        return self._value  # type: ignore[return-value]

    async def refresh(self) -> T:
        """Reload the value, serialized behind any in-flight initialization."""
        await self._sync.sync(self._load)
        return self._value  # type: ignore[return-value]

    async def _initialize_once(self) -> None:
        # losers of the race see an initialized cache here
        if self._initialized:
            return
        await self._load()

    async def _load(self) -> None:
        self._value = await self._initializer()
        self._initialized = True
        logger.debug("Cache loaded")
