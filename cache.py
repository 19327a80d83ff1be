"""
Read-through TTL cache for document-store reads.

Entries are checked for freshness when read; nothing is evicted in the
background. Callers invalidate keys explicitly after writes that change the
underlying data. A failed fetch is never stored.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, Hashable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TTL_MS = 10 * 60 * 1000


def wall_clock_ms() -> float:
    """Current wall-clock time in milliseconds."""
    return time.time() * 1000.0


@dataclass
class CacheEntry(Generic[T]):
    """
    A cached value and the time it was stored.

    Attributes:
        value: Cached value
        cached_at_ms: Clock reading (milliseconds) when the value was stored
    """
    value: T
    cached_at_ms: float

    def is_fresh(self, now_ms: float, ttl_ms: float) -> bool:
        return now_ms - self.cached_at_ms <= ttl_ms


class ReadThroughCache:
    """
    Keyed cache that calls a fetch function on miss or expiry.

    One instance is created per session by the composition root and passed
    to the loaders that need it.
    """

    def __init__(
        self,
        default_ttl_ms: float = DEFAULT_TTL_MS,
        clock: Optional[Callable[[], float]] = None
    ):
        """
        Initialize the cache.

        Args:
            default_ttl_ms: TTL used when a call does not pass one
            clock: Callable returning the current time in milliseconds
        """
        if default_ttl_ms < 0:
            raise ValueError("default_ttl_ms must not be negative")
        self.default_ttl_ms = default_ttl_ms
        self._clock = clock or wall_clock_ms
        self._entries: Dict[Hashable, CacheEntry] = {}
        self._in_flight: Dict[Hashable, "asyncio.Future[Any]"] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def _ttl(self, ttl_ms: Optional[float]) -> float:
        return self.default_ttl_ms if ttl_ms is None else ttl_ms

    def _fresh_entry(self, key: Hashable, ttl_ms: Optional[float]) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is not None and entry.is_fresh(self._clock(), self._ttl(ttl_ms)):
            return entry
        return None

    def get(self, key: Hashable, ttl_ms: Optional[float], fetch_fn: Callable[[], T]) -> T:
        """
        Return the cached value for ``key`` or fetch and store it.

        Args:
            key: Cache key (e.g. ``expenses:2024-02``)
            ttl_ms: Maximum age in milliseconds; None uses the default
            fetch_fn: Zero-argument callable producing the value

        Returns:
            Fresh cached value or the newly fetched value

        Raises:
            Any exception raised by ``fetch_fn``; nothing is cached in that case
        """
        entry = self._fresh_entry(key, ttl_ms)
        if entry is not None:
            logger.debug(f"Cache hit: {key}")
            return entry.value

        logger.debug(f"Cache miss: {key}")
        value = fetch_fn()
        self.put(key, value)
        return value

    async def get_async(
        self,
        key: Hashable,
        ttl_ms: Optional[float],
        fetch_fn: Callable[[], Awaitable[T]]
    ) -> T:
        """
        Coroutine variant of :meth:`get`.

        Concurrent misses on the same key share a single in-flight fetch.
        A caller that is cancelled stops waiting without cancelling the
        fetch; the result is still stored for the remaining waiters.
        """
        entry = self._fresh_entry(key, ttl_ms)
        if entry is not None:
            logger.debug(f"Cache hit: {key}")
            return entry.value

        pending = self._in_flight.get(key)
        if pending is not None:
            logger.debug(f"Joining in-flight fetch: {key}")
            return await asyncio.shield(pending)

        logger.debug(f"Cache miss: {key}")
        pending = asyncio.ensure_future(fetch_fn())
        self._in_flight[key] = pending
        pending.add_done_callback(lambda done: self._settle(key, done))
        return await asyncio.shield(pending)

    def _settle(self, key: Hashable, done: "asyncio.Future[Any]") -> None:
        if self._in_flight.get(key) is done:
            del self._in_flight[key]
        if done.cancelled() or done.exception() is not None:
            return
        self.put(key, done.result())

    def peek(self, key: Hashable, ttl_ms: Optional[float] = None) -> Optional[CacheEntry]:
        """Return the fresh entry for ``key`` without fetching, or None."""
        return self._fresh_entry(key, ttl_ms)

    def put(self, key: Hashable, value: Any) -> None:
        """Store ``value`` under ``key`` stamped with the current time."""
        self._entries[key] = CacheEntry(value=value, cached_at_ms=self._clock())

    def invalidate(self, key: Hashable) -> bool:
        """
        Remove ``key`` regardless of age.

        Returns:
            True if an entry was removed
        """
        removed = self._entries.pop(key, None) is not None
        if removed:
            logger.info(f"Cache invalidated: {key}")
        return removed

    def invalidate_prefix(self, prefix: str) -> int:
        """Remove every string key starting with ``prefix``; returns the count removed."""
        keys = [k for k in self._entries if isinstance(k, str) and k.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        if keys:
            logger.info(f"Cache invalidated {len(keys)} entries with prefix {prefix!r}")
        return len(keys)

    def clear(self) -> None:
        self._entries.clear()
