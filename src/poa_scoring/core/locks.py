"""Per-entity asyncio locks for serializing read-modify-write cycles."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager

import structlog

from poa_scoring.core.errors import LockTimeoutError

logger = structlog.get_logger()


class KeyedLock:
    """Registry of asyncio locks keyed by entity identifier.

    Locks for several keys are always taken in sorted order, so two callers that need
    overlapping key sets cannot deadlock each other. A key's lock only lives while
    some caller holds or waits for it.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        # Holders plus waiters per key.
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def _checkout(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._users[key] = self._users.get(key, 0) + 1
        return lock

    def _checkin(self, key: str) -> None:
        remaining = self._users[key] - 1
        if remaining:
            self._users[key] = remaining
        else:
            del self._users[key]
            del self._locks[key]

    def locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def acquire_many(self, keys: Iterable[str], timeout: float) -> AsyncIterator[None]:
        """Acquire the locks for ``keys`` in sorted order.

        Args:
            keys: Entity keys; duplicates are ignored.
            timeout: Seconds to wait for each lock.

        Raises:
            LockTimeoutError: If any lock is not acquired within ``timeout``.
        """
        ordered = sorted(set(keys))
        held: list[str] = []
        try:
            for key in ordered:
                lock = self._checkout(key)
                try:
                    async with asyncio.timeout(timeout):
                        await lock.acquire()
                except TimeoutError as e:
                    self._checkin(key)
                    logger.warning("lock_timeout", key=key, timeout=timeout)
                    raise LockTimeoutError(ordered, timeout) from e
                except asyncio.CancelledError:
                    self._checkin(key)
                    raise
                held.append(key)
            yield
        finally:
            for key in reversed(held):
                self._locks[key].release()
                self._checkin(key)
