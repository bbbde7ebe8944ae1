"""Fixed-window throttle counters with a shared Redis backend and a local fallback.

Both backends are thin adapters over ``limits.aio.storage``: ``incr`` creates a
bucket with its expiry on first use and ``get_expiry`` reports when the
current window ends.

Flow Diagram — select_counter_store()
=====================================
::
    ┌──────────────────┐
    │ RATE_LIMIT_BACKEND│
    └────────┬─────────┘
     "memory"?│
    ┌────────┴────────┐
    │ YES              │ NO ("auto")
    ▼                  ▼
┌──────────┐    ┌─────────────┐
│ Memory   │    │ Redis check │
│ store    │    │ (PING)      │
└──────────┘    └──────┬──────┘
                 OK?   │
                ┌──────┴──────┐
                │ YES          │ NO
                ▼              ▼
          ┌──────────┐   ┌──────────────┐
          │ Redis    │   │ Memory store  │
          │ store    │   │ (warning log) │
          └──────────┘   └──────────────┘

Fixed Window Semantics
======================
- The first increment of a bucket creates it at 1 with an expiry of
  ``window_seconds``.
- Later increments inside the window add 1 and report the remaining TTL.
- Once the window expires the bucket restarts at 1.
- Bursts straddling a window boundary can briefly exceed the nominal rate.

Classes:
    CounterWindow:  Count and remaining window time after an increment.
    CounterStore:  Abstract counter backend.
    LimitsCounterStore:  Counter backend over a ``limits`` async storage.
    RedisCounterStore:  Shared backend, ``limits`` Redis storage on redis-py.
    MemoryCounterStore:  Per-process backend, ``limits`` memory storage.

Functions:
    select_counter_store():  Startup probe choosing the active backend.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from logging import Logger
from typing import Optional

from limits.aio.storage import MemoryStorage, RedisStorage, Storage
from limits.errors import StorageError
from redis.exceptions import RedisError

from app.config import Settings
from app.enums import CounterBackend
from app.exceptions import BackendUnavailable

__all__ = [
    "CounterStore",
    "CounterWindow",
    "LimitsCounterStore",
    "MemoryCounterStore",
    "RedisCounterStore",
    "select_counter_store",
]

STORAGE_ERRORS = (StorageError, RedisError, OSError, asyncio.TimeoutError)


@dataclass(frozen=True)
class CounterWindow:
    count: int
    ttl_seconds: float


class CounterStore(ABC):
    """Atomic increment-with-expiry counters."""

    name: CounterBackend

    @abstractmethod
    async def increment(self, bucket_key: str, window_seconds: int) -> CounterWindow:
        """Add one to ``bucket_key`` in its current window and return the new state."""

    @abstractmethod
    async def ping(self) -> bool:
        """Return True when the backend answers."""

    async def close(self) -> None:
        return None


class LimitsCounterStore(CounterStore):
    def __init__(self, storage: Storage):
        self._storage = storage

    async def increment(self, bucket_key: str, window_seconds: int) -> CounterWindow:
        try:
            count = await self._storage.incr(bucket_key, window_seconds)
            expires_at = await self._storage.get_expiry(bucket_key)
        except STORAGE_ERRORS as exc:
            raise BackendUnavailable(self.name, str(exc)) from exc

        return CounterWindow(count=int(count), ttl_seconds=expires_at - time.time())

    async def ping(self) -> bool:
        try:
            return bool(await self._storage.check())
        except STORAGE_ERRORS:
            return False


class RedisCounterStore(LimitsCounterStore):
    name = CounterBackend.REDIS

    @classmethod
    def from_url(cls, url: str, socket_timeout: float) -> "RedisCounterStore":
        storage = RedisStorage(
            f"async+{url}",
            implementation="redispy",
            wrap_exceptions=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(storage)


class MemoryCounterStore(LimitsCounterStore):
    """In-process counters; limits hold per instance only."""

    name = CounterBackend.MEMORY

    def __init__(self, storage: Optional[Storage] = None):
        super().__init__(storage if storage is not None else MemoryStorage())


async def select_counter_store(settings: Settings, logger: Logger) -> CounterStore:
    """Probe the shared backend once and return the store to use.

    The outcome is always logged so operators can tell whether limits are
    enforced cluster-wide or per instance.
    """
    if settings.RATE_LIMIT_BACKEND == "memory":
        logger.info("Throttle counters: in-process memory store (configured)")
        return MemoryCounterStore()

    store = RedisCounterStore.from_url(settings.REDIS_URL, settings.REDIS_SOCKET_TIMEOUT)
    if await store.ping():
        logger.info(f"Throttle counters: Redis at {settings.REDIS_URL}")
        return store

    logger.warning(
        f"Redis unreachable at {settings.REDIS_URL}; throttle counters fall back to the "
        f"in-process memory store and limits are enforced per instance"
    )
    return MemoryCounterStore()
