"""Core types for the request cache."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Generic, TypeVar

T = TypeVar("T")

# A zero-argument async producer, e.g. a backend list call
Fetcher = Callable[[], Awaitable[T]]

# "30s", "5m", "2h", "1d", a timedelta, or milliseconds
Duration = str | int | timedelta


@dataclass(frozen=True, slots=True)
class CacheEntry(Generic[T]):
    """A cached value and the clock time (ms) at which it expires."""

    value: T
    expires_at: int

    def is_fresh(self, now: int) -> bool:
        return now < self.expires_at


@dataclass(frozen=True, slots=True)
class CacheStats:
    """Snapshot of cache state, for diagnostics."""

    cache_size: int
    pending_requests: int
    keys: list[str] = field(default_factory=list)
