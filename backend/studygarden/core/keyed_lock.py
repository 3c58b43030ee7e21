"""In-process per-key locking for serialising read-modify-write cycles."""

import asyncio
from collections.abc import AsyncIterator, Hashable
from contextlib import asynccontextmanager

from studygarden.core.logging import get_logger

logger = get_logger(__name__)


class KeyedLock:
    """
    One asyncio.Lock per key, created on demand and dropped when idle.

    Usage:
        locks = KeyedLock()
        async with locks.hold(("user", "subject", "concept")):
            # Critical section for that key only
            ...

    Different keys never wait on each other. Must be used from a single
    event loop.
    """

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._waiters: dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._waiters[key] = self._waiters.get(key, 0) + 1

        try:
            if lock.locked():
                logger.debug(f"Waiting for lock: {key}")
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                # Nobody else holds or awaits it
                del self._waiters[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
