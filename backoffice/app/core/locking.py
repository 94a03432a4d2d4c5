"""
Keyed locks for serializing work on a single entity.

Two backends share the same ``hold(key)`` interface:

- ``KeyedLock``: asyncio locks held in process memory. Enough for a single
  worker process.
- ``RedisKeyedLock``: a Redis lock per key, for deployments running several
  workers against the same database.

Only holders of the same key wait on each other.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Any, Dict, List, Optional

from redis.exceptions import LockError

import backoffice.app.core.redis_client as redis_client_module
from backoffice.app.core.config import settings
from backoffice.app.core.exceptions import ConflictError

logger = logging.getLogger("backoffice.locking")


async def _acquire(lock: asyncio.Lock, timeout: Optional[float]) -> bool:
    """
    Acquire ``lock`` within ``timeout`` seconds; False on timeout.

    A timeout or cancellation never leaves the lock held.
    """
    waiter = asyncio.ensure_future(lock.acquire())
    try:
        done, _ = await asyncio.wait({waiter}, timeout=timeout)
    except BaseException:
        if waiter.done() and not waiter.cancelled():
            lock.release()
        else:
            waiter.cancel()
        raise
    if done:
        return True
    waiter.cancel()
    return False


class KeyedLock:
    """In-process mutual exclusion per key."""

    def __init__(self, blocking_timeout: float = None):
        self.blocking_timeout = blocking_timeout
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: Any) -> AsyncIterator[None]:
        key = str(key)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._holders[key] = self._holders.get(key, 0) + 1

        try:
            if not await _acquire(lock, self.blocking_timeout):
                raise ConflictError(
                    f"Timed out waiting for lock on '{key}'",
                    details={"key": key}
                )
            try:
                yield
            finally:
                lock.release()
        finally:
            # Drop the lock object once nobody holds or waits on it
            self._holders[key] -= 1
            if not self._holders[key]:
                del self._holders[key]
                del self._locks[key]

    def active_keys(self) -> List[str]:
        """Keys currently held or waited on."""
        return list(self._locks)


class RedisKeyedLock:
    """Cross-process mutual exclusion per key, backed by Redis."""

    def __init__(self, prefix: str, timeout: float, blocking_timeout: float):
        self.prefix = prefix
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout

    @asynccontextmanager
    async def hold(self, key: Any) -> AsyncIterator[None]:
        name = f"{self.prefix}{key}"
        lock = redis_client_module.redis_client.lock(
            name,
            timeout=self.timeout,
            blocking_timeout=self.blocking_timeout,
        )
        acquired = await lock.acquire()
        if not acquired:
            raise ConflictError(
                f"Timed out waiting for lock on '{key}'",
                details={"key": str(key)}
            )
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError as e:
                # Lock expired before release; the guarded write is already done
                logger.warning("Releasing lock %s failed: %s", name, e)


def build_lock(backend: str, prefix: str):
    """Create the lock backend named in settings."""
    if backend == "redis":
        return RedisKeyedLock(
            prefix=prefix,
            timeout=settings.lock_timeout_seconds,
            blocking_timeout=settings.lock_blocking_timeout_seconds,
        )
    if backend == "memory":
        return KeyedLock(blocking_timeout=settings.lock_blocking_timeout_seconds)
    raise ValueError(f"Unknown lock backend: {backend}")


# Shared by every DeliveryService instance in this process
delivery_locks = build_lock(settings.lock_backend, prefix="lock:delivery:")
