"""Async utilities: bridging blocking I/O to asyncio and keyed locking."""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Callable, Coroutine, Hashable, Sequence, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)

# Bounds concurrent blocking calls; set by init_semaphore()
_semaphore: asyncio.Semaphore | None = None


def init_semaphore(max_parallel: int = 4) -> None:
    """Create the process-wide I/O semaphore.  The CLI and the MCP server call this once."""
    global _semaphore
    _semaphore = asyncio.Semaphore(max_parallel)
    logger.info(
        "I/O semaphore initialized: max_parallel=%d",
        max_parallel,
    )


async def run_sync_limited(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Call *func* in a worker thread once a semaphore slot is free.

    Without ``init_semaphore()`` the call is not bounded.
    """
    if _semaphore is None:
        return await asyncio.to_thread(func, *args, **kwargs)
    async with _semaphore:
        return await asyncio.to_thread(func, *args, **kwargs)


async def gather_limited(
    coros: Sequence[Coroutine[Any, Any, T]],
) -> list[T]:
    """Await *coros* together and return their results in order.

    The bound comes from the coroutines themselves using
    ``run_sync_limited``; the first exception propagates.
    """
    return list(await asyncio.gather(*coros))


class KeyedLock:
    """A family of asyncio locks, one per key.

    Locks are created on first use and dropped once no task holds or waits
    on them, so the table does not grow with every key ever seen.

    Example:
        locks = KeyedLock()
        async with locks.hold(attachment.id):
            ...
    """

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._users: dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def locked(self, key: Hashable) -> bool:
        """Return ``True`` if some task currently holds *key*."""
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
