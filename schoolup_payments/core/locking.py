"""
Per-key mutual exclusion.

Confirmations and timeouts for the same transaction id must not interleave;
unrelated transactions must never wait on each other. One asyncio.Lock per
active key, dropped once nobody holds or waits for it.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

import structlog

logger = structlog.get_logger(__name__)


class KeyedLock:
    """Lock registry keyed by an entity id (here: the transaction id)."""

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._holders[key] = self._holders.get(key, 0) + 1

        if lock.locked():
            logger.debug("keyed_lock_contended", key=key, waiters=self._holders[key] - 1)

        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                del self._holders[key]
                del self._locks[key]

    def __len__(self) -> int:
        """Number of keys currently held or awaited."""
        return len(self._locks)
