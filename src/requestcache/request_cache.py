"""Single-flight TTL cache for async fetches.

Provides:
- get(): cached fetch with in-flight request coalescing
- invalidate(), invalidate_pattern(): targeted removal
- clear(): full reset, e.g. on logout
- get_stats(), peek(), purge_expired(): introspection and housekeeping
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar, cast

from requestcache.duration import parse_duration
from requestcache.store import MemoryStore, ValueStore
from requestcache.types import CacheEntry, CacheStats, Duration, Fetcher

T = TypeVar("T")

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


def _monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


def _consume_exception(task: asyncio.Task[Any]) -> None:
    # Every caller may have been cancelled before the fetch failed
    if not task.cancelled():
        task.exception()


class RequestCache:
    """Process-local cache that deduplicates concurrent fetches per key.

    A key is served from the value store while its entry is fresh. On a
    miss, the first caller starts the fetcher and every later caller for the
    same key awaits that same operation until it settles. Successful results
    are stored with an expiry of ``now + ttl``; failures are never cached.

    Expired entries are dropped lazily when read. Invalidation does not
    cancel a running fetcher. Unless ``discard_invalidated_results`` is set,
    the fetcher's result is still written when it arrives.
    """

    def __init__(
        self,
        *,
        default_ttl: Duration = "5m",
        store: ValueStore | None = None,
        clock: Clock | None = None,
        discard_invalidated_results: bool = False,
        fetch_timeout: Duration | None = None,
    ) -> None:
        self._default_ttl = parse_duration(default_ttl)
        self._store: ValueStore = store if store is not None else MemoryStore()
        self._clock: Clock = clock or _monotonic_ms
        self._discard_invalidated = discard_invalidated_results
        self._fetch_timeout = (
            parse_duration(fetch_timeout) if fetch_timeout is not None else None
        )
        self._pending: dict[str, asyncio.Task[Any]] = {}

    async def get(
        self,
        key: str,
        fetcher: Fetcher[T],
        ttl: Duration | None = None,
    ) -> T:
        """Return the value for ``key``, fetching it at most once at a time.

        Args:
            key: Cache key, unique per logical resource or query
            fetcher: Zero-argument async function producing the value
            ttl: Time to live for a freshly fetched value (default: cache default)

        Returns:
            Cached, in-flight, or freshly fetched value

        Raises:
            ValueError: If ``key`` is empty
            Exception: Whatever the fetcher raised, unchanged
        """
        if not key:
            raise ValueError("key must be a non-empty string")
        ttl_ms = self._default_ttl if ttl is None else parse_duration(ttl)

        entry = self._store.get(key)
        if entry is not None:
            if entry.is_fresh(self._clock()):
                logger.debug("Cache hit for %r", key)
                return cast(T, entry.value)
            logger.debug("Cache entry for %r expired", key)
            self._store.delete(key)

        task = self._pending.get(key)
        if task is None:
            logger.debug("Cache miss for %r, fetching", key)
            # No await between the checks above and registration below
            task = asyncio.create_task(self._settle(key, fetcher(), ttl_ms))
            task.add_done_callback(_consume_exception)
            self._pending[key] = task
        else:
            logger.debug("Joining in-flight request for %r", key)

        # A cancelled caller must not cancel the fetch for the others
        return cast(T, await asyncio.shield(task))

    def invalidate(self, key: str) -> None:
        """Forget the cached value and in-flight request for ``key``."""
        self._store.delete(key)
        if self._pending.pop(key, None) is not None:
            logger.debug("Detached in-flight request for %r", key)
        logger.debug("Invalidated %r", key)

    def invalidate_pattern(self, pattern: str | re.Pattern[str]) -> None:
        """Invalidate every stored key matched by the regular expression.

        Matching uses ``re.search``, so ``"^users"`` matches ``"users-list"``
        and ``"list"`` matches both ``"users-list"`` and ``"vehicles-list"``.
        Only keys currently holding a value are considered.
        """
        regex = re.compile(pattern)
        for key in self._store.keys():
            if regex.search(key):
                self.invalidate(key)

    def clear(self) -> None:
        """Drop all values and in-flight requests."""
        self._store.clear()
        self._pending.clear()
        logger.debug("Cleared request cache")

    def get_stats(self) -> CacheStats:
        """Snapshot of the cache for diagnostics."""
        return CacheStats(
            cache_size=len(self._store),
            pending_requests=len(self._pending),
            keys=list(self._store.keys()),
        )

    def now(self) -> int:
        """Current reading of the cache clock, in milliseconds."""
        return self._clock()

    def peek(self, key: str) -> Any | None:
        """Fresh cached value for ``key`` or None, without fetching."""
        entry = self._store.get(key)
        if entry is None or not entry.is_fresh(self._clock()):
            return None
        return entry.value

    def purge_expired(self) -> int:
        """Remove all expired entries now. Returns how many were removed."""
        now = self._clock()
        removed = 0
        for key in self._store.keys():
            entry = self._store.get(key)
            if entry is not None and not entry.is_fresh(now):
                self._store.delete(key)
                removed += 1
        if removed:
            logger.debug("Purged %d expired entries", removed)
        return removed

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    async def _settle(self, key: str, pending: Awaitable[T], ttl_ms: int) -> T:
        """Await the fetch, then store its result and release the key."""
        task = asyncio.current_task()
        try:
            value = await self._await_fetch(key, pending)
        finally:
            # Only release our own registration, never a newer request's
            current = self._pending.get(key) is task
            if current:
                del self._pending[key]

        if not current and self._discard_invalidated:
            logger.debug("Discarding result for %r, invalidated while in flight", key)
            return value

        self._store.set(key, CacheEntry(value=value, expires_at=self._clock() + ttl_ms))
        return value

    async def _await_fetch(self, key: str, pending: Awaitable[T]) -> T:
        if self._fetch_timeout is None:
            return await pending
        try:
            return await asyncio.wait_for(pending, self._fetch_timeout / 1000)
        except asyncio.TimeoutError:
            logger.warning(
                "Fetch for %r timed out after %d ms", key, self._fetch_timeout
            )
            raise


def create_request_cache(
    *,
    default_ttl: Duration = "5m",
    max_items: int | None = None,
    clock: Clock | None = None,
    discard_invalidated_results: bool = False,
    fetch_timeout: Duration | None = None,
) -> RequestCache:
    """Create a request cache backed by an in-memory store.

    Args:
        default_ttl: Time to live when ``get`` is called without one
        max_items: Cap on stored values, evicting least recently used (default: unbounded)
        clock: Millisecond clock, monotonic by default
        discard_invalidated_results: Drop results of fetches invalidated mid-flight
        fetch_timeout: Fail fetches that take longer than this (default: never)

    Returns:
        RequestCache instance
    """
    return RequestCache(
        default_ttl=default_ttl,
        store=MemoryStore(max_items=max_items),
        clock=clock,
        discard_invalidated_results=discard_invalidated_results,
        fetch_timeout=fetch_timeout,
    )


__all__ = ["Clock", "RequestCache", "create_request_cache"]
