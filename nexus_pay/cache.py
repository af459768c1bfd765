"""
Resolution cache with single-flight de-duplication.

A keyed cache for asynchronous lookups. For any key, at most one fetch
is in flight: concurrent ``resolve()`` callers share the same
``asyncio.Task`` and all observe the same value or the same exception.

States per key:
    - MISSING: never fetched, expired, or last fetch failed.
    - PENDING: a fetch is in flight (``pending(key)`` returns its future).
    - RESOLVED: a value is stored. ``None`` is a valid stored value and
      means "known absent".

Rules:
    - Failures are never stored. The next resolve() retries.
    - A cancelled waiter does not cancel the shared fetch.
    - A failed fetch nobody awaits is logged once, never reported as an
      unretrieved task exception.
    - Optional TTL: entries older than ``ttl`` seconds are treated as
      MISSING. ``ttl=None`` keeps entries until ``aclose()``.
    - Caches are constructed explicitly and injected; there is no
      module-level instance.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

import structlog

logger = structlog.get_logger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class CacheStatus(str, Enum):
    MISSING = "missing"
    PENDING = "pending"
    RESOLVED = "resolved"


@dataclass(frozen=True)
class CacheLookup(Generic[V]):
    """Snapshot of a key's state. ``value`` is only meaningful when RESOLVED."""

    status: CacheStatus
    value: V | None = None


@dataclass(frozen=True)
class _Entry(Generic[V]):
    value: V
    stored_at: float


def _consume_exception(task: asyncio.Future[object]) -> None:
    # Logged in _fetch.
    if not task.cancelled():
        task.exception()


class ResolutionCache(Generic[K, V]):
    """Keyed single-flight cache.

    Args:
        name: Label used in log events.
        ttl: Seconds an entry stays fresh. None disables expiry.
        clock: Monotonic clock. Inject for tests.
    """

    def __init__(
        self,
        *,
        name: str = "cache",
        ttl: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl is not None and ttl <= 0:
            raise ValueError("ttl must be positive or None")
        self._name = name
        self._ttl = ttl
        self._clock = clock
        self._entries: dict[K, _Entry[V]] = {}
        self._pending: dict[K, asyncio.Task[V]] = {}
        self._closed = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._entries)

    # -----------------------------------------------------------------
    # Synchronous reads
    # -----------------------------------------------------------------

    def _fresh_entry(self, key: K) -> _Entry[V] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._ttl is not None and self._clock() - entry.stored_at >= self._ttl:
            del self._entries[key]
            return None
        return entry

    def get(self, key: K) -> V | None:
        """Stored value, or None if unknown, pending or known absent."""
        entry = self._fresh_entry(key)
        return entry.value if entry is not None else None

    def lookup(self, key: K) -> CacheLookup[V]:
        entry = self._fresh_entry(key)
        if entry is not None:
            return CacheLookup(CacheStatus.RESOLVED, entry.value)
        if key in self._pending:
            return CacheLookup(CacheStatus.PENDING)
        return CacheLookup(CacheStatus.MISSING)

    def pending(self, key: K) -> asyncio.Future[V] | None:
        """The in-flight fetch for key, if any. Await or poll it."""
        return self._pending.get(key)

    # -----------------------------------------------------------------
    # Resolution
    # -----------------------------------------------------------------

    async def resolve(self, key: K, fetcher: Callable[[], Awaitable[V]]) -> V:
        """Return the cached value for key, fetching it at most once.

        Args:
            key: Cache key.
            fetcher: Zero-arg coroutine function producing the value.
                Only called if the key is neither RESOLVED nor PENDING.

        Raises:
            RuntimeError: If the cache has been closed.
            Exception: Whatever the shared fetch raised.
        """
        if self._closed:
            raise RuntimeError(f"{self._name} is closed")

        entry = self._fresh_entry(key)
        if entry is not None:
            return entry.value

        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fetch(key, fetcher))
            task.add_done_callback(_consume_exception)
            self._pending[key] = task
        return await asyncio.shield(task)

    async def _fetch(self, key: K, fetcher: Callable[[], Awaitable[V]]) -> V:
        logger.debug("cache_fetch_started", cache=self._name, key=repr(key))
        try:
            value = await fetcher()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning(
                "cache_fetch_failed", cache=self._name, key=repr(key), error=str(exc)
            )
            raise
        finally:
            self._pending.pop(key, None)
        self._entries[key] = _Entry(value, self._clock())
        return value

    # -----------------------------------------------------------------
    # Invalidation and teardown
    # -----------------------------------------------------------------

    def invalidate(self, key: K) -> None:
        """Drop the stored value for key. An in-flight fetch is untouched."""
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    async def aclose(self) -> None:
        """Cancel in-flight fetches and drop all entries."""
        self._closed = True
        tasks = list(self._pending.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._pending.clear()
        self._entries.clear()

    async def __aenter__(self) -> ResolutionCache[K, V]:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
