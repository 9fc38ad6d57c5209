import asyncio
import logging
import time
import uuid
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncContextManager, Dict

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from holdbook.core.exceptions import LockTimeoutError, StoreUnavailableError

logger = logging.getLogger(__name__)


def capacity_key(product_id: str, day: date) -> str:
    """Lock/counter key for one product on one calendar day"""
    return f"{product_id}:{day.isoformat()}"


def _abandon(waiter: "asyncio.Future[bool]", lock: asyncio.Lock) -> None:
    """Give up on a pending acquire; a grant that lands anyway is handed straight back."""

    def _hand_back(future: "asyncio.Future[bool]") -> None:
        if not future.cancelled() and future.exception() is None:
            lock.release()

    waiter.cancel()
    waiter.add_done_callback(_hand_back)


class KeyedLock(ABC):
    """Mutual exclusion per capacity key; different keys never block each other."""

    @abstractmethod
    def hold(self, key: str) -> AsyncContextManager[None]:
        ...


# ---------------------------------------------------------------------------
#  In-process locks (single worker deployments and tests)
# ---------------------------------------------------------------------------

class LocalKeyedLock(KeyedLock):
    """One ``asyncio.Lock`` per key, dropped again once nobody waits on it."""

    def __init__(self, timeout: float = 2.0, retries: int = 3):
        self._timeout = timeout
        self._retries = retries
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            await self._acquire(key, lock)
            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                self._locks.pop(key, None)

    async def _acquire(self, key: str, lock: asyncio.Lock) -> None:
        for attempt in range(1, self._retries + 1):
            waiter = asyncio.ensure_future(lock.acquire())
            try:
                done, _ = await asyncio.wait({waiter}, timeout=self._timeout)
            except asyncio.CancelledError:
                _abandon(waiter, lock)
                raise
            if done:
                waiter.result()
                return
            _abandon(waiter, lock)
            logger.warning("Lock %s still busy (attempt %s/%s)", key, attempt, self._retries)
        raise LockTimeoutError(key)

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return bool(lock and lock.locked())


# ---------------------------------------------------------------------------
#  Redis locks (several API workers sharing one store)
# ---------------------------------------------------------------------------

class CapacityLock:
    """Async context-manager that obtains a short-lived Redis lock per capacity key.

    Usage::
        async with CapacityLock(redis, key):
            # safe to read committed capacity & debit it

    - Locks automatically expire after *ttl* seconds so that a crashed worker
      doesn't dead-lock a product date indefinitely.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        key: str,
        ttl: int = 30,
        retry_delay: float = 0.05,
        timeout: float = 2.0,
        retries: int = 3,
    ):
        self._redis = redis
        self.key = f"lock:capacity:{key}"
        self.ttl = ttl
        self._retry_delay = retry_delay
        self._timeout = timeout
        self._retries = retries
        self._token = uuid.uuid4().hex  # unique owner id

    async def __aenter__(self):
        for attempt in range(1, self._retries + 1):
            start = time.monotonic()
            # Redis SET … NX EX implements a simple mutex
            while time.monotonic() - start <= self._timeout:
                try:
                    ok = await self._redis.set(self.key, self._token, ex=self.ttl, nx=True)
                except RedisError as exc:
                    raise StoreUnavailableError(f"lock service unavailable: {exc}") from exc
                if ok:
                    return self
                await asyncio.sleep(self._retry_delay)
            logger.warning("Lock %s still busy (attempt %s/%s)", self.key, attempt, self._retries)
        raise LockTimeoutError(self.key)

    async def __aexit__(self, exc_type, exc, tb):
        # Delete the lock *only* if we still own it
        try:
            if (await self._redis.get(self.key)) == self._token:
                await self._redis.delete(self.key)
        except RedisError as err:
            logger.warning("Could not release %s, it will expire in %ss: %s", self.key, self.ttl, err)


class RedisKeyedLock(KeyedLock):
    def __init__(
        self,
        redis: aioredis.Redis,
        ttl: int = 30,
        retry_delay: float = 0.05,
        timeout: float = 2.0,
        retries: int = 3,
    ):
        self._redis = redis
        self._ttl = ttl
        self._retry_delay = retry_delay
        self._timeout = timeout
        self._retries = retries

    def hold(self, key: str) -> CapacityLock:
        return CapacityLock(
            self._redis,
            key,
            ttl=self._ttl,
            retry_delay=self._retry_delay,
            timeout=self._timeout,
            retries=self._retries,
        )


def redis_from_dsn(dsn: str) -> aioredis.Redis:
    """Shared pooled client"""
    return aioredis.from_url(dsn, encoding="utf-8", decode_responses=True)
