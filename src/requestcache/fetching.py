"""DataFetcher - per-resource loading state on top of RequestCache."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from requestcache.duration import parse_duration
from requestcache.request_cache import RequestCache
from requestcache.types import Duration, Fetcher

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FetchOptions(Generic[T]):
    """Options for a DataFetcher."""

    initial_data: T | None = None
    enabled: bool = True
    cache_time: Duration = "5m"  # TTL of the shared cache entry
    stale_time: Duration = "1m"  # local freshness window, usually shorter
    on_success: Callable[[T], None] | None = None
    on_error: Callable[[Exception], None] | None = None


class DataFetcher(Generic[T]):
    """Binds a cache key and fetcher to loading, error and staleness state.

    Usage:
        users = DataFetcher(cache, "users-list", client_list_users)
        await users.fetch()
        if users.error is None:
            render(users.data)

    ``fetch`` is the error boundary: fetcher failures end up in ``error``
    and never propagate to the caller. Previously loaded ``data`` is kept
    when a later fetch fails.
    """

    def __init__(
        self,
        cache: RequestCache,
        key: str,
        fetcher: Fetcher[T],
        options: FetchOptions[T] | None = None,
    ) -> None:
        options = options or FetchOptions()
        self._cache = cache
        self._key = key
        self._fetcher = fetcher
        self._enabled = options.enabled
        self._cache_time = parse_duration(options.cache_time)
        self._stale_time = parse_duration(options.stale_time)
        self._on_success = options.on_success
        self._on_error = options.on_error

        self.data: T | None = options.initial_data
        self.error: Exception | None = None
        self.is_loading = options.enabled
        self.last_fetch: int | None = None

    @property
    def key(self) -> str:
        return self._key

    @property
    def is_stale(self) -> bool:
        """True once the last successful fetch is older than stale_time."""
        if self.last_fetch is None:
            return True
        return self._now() - self.last_fetch > self._stale_time

    async def fetch(self, force: bool = False) -> None:
        """Load data through the cache unless local data is still fresh."""
        if not self._enabled:
            return

        if not force and self.data is not None and self._is_locally_fresh():
            logger.debug("Local data for %r is fresh, skipping fetch", self._key)
            return

        self.is_loading = True
        self.error = None
        try:
            result = await self._cache.get(self._key, self._fetcher, self._cache_time)
            self.data = result
            self.last_fetch = self._now()
            # A failing callback is reported like a failed fetch
            if self._on_success is not None:
                self._on_success(result)
        except Exception as e:
            logger.debug("Fetch for %r failed: %r", self._key, e)
            self.error = e
            if self._on_error is not None:
                self._on_error(e)
        finally:
            self.is_loading = False

    async def refetch(self) -> None:
        """Fetch, ignoring local freshness. The cache TTL still applies."""
        await self.fetch(force=True)

    def invalidate(self) -> None:
        """Drop the shared cache entry and local freshness for this key."""
        self._cache.invalidate(self._key)
        self.last_fetch = None

    async def rebind(self, key: str, fetcher: Fetcher[T]) -> None:
        """Switch to a different key and load it.

        Existing data stays visible until the new key's fetch succeeds.
        """
        self._key = key
        self._fetcher = fetcher
        self.last_fetch = None
        await self.fetch()

    def _is_locally_fresh(self) -> bool:
        if self.last_fetch is None:
            return False
        return self._now() - self.last_fetch < self._stale_time

    def _now(self) -> int:
        return self._cache.now()


__all__ = ["DataFetcher", "FetchOptions"]
