"""Per-key serialization for read-modify-write sections."""

import asyncio
from contextlib import asynccontextmanager
from typing import Dict, Hashable, Tuple

import structlog

logger = structlog.get_logger()


class KeyedLocks:
    """Registry of asyncio locks, one per key, released when unused.

    Guards a single process. Across processes the engines additionally rely on
    row locks (SELECT ... FOR UPDATE) and unique constraints.
    """

    def __init__(self, name: str):
        self.name = name
        self._locks: Dict[Hashable, Tuple[asyncio.Lock, int]] = {}

    @asynccontextmanager
    async def hold(self, *key: Hashable):
        lock, waiters = self._locks.get(key, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        elif lock.locked():
            logger.debug("Waiting for lock", locks=self.name, key=[str(k) for k in key], waiters=waiters)
        self._locks[key] = (lock, waiters + 1)
        try:
            async with lock:
                yield
        finally:
            lock, waiters = self._locks[key]
            if waiters <= 1:
                del self._locks[key]
            else:
                self._locks[key] = (lock, waiters - 1)

    def __len__(self) -> int:
        return len(self._locks)

    def __repr__(self) -> str:
        return f"KeyedLocks({self.name!r}, held={len(self._locks)})"


points_locks = KeyedLocks("user_points")
progress_locks = KeyedLocks("challenge_progress")
