"""Shared pytest fixtures."""

import pytest

from requestcache import MemoryStore, RequestCache


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now: int = 1_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    """Create a fresh FakeClock for each test."""
    return FakeClock()


@pytest.fixture
def store() -> MemoryStore:
    """Create a fresh MemoryStore for each test."""
    return MemoryStore()


@pytest.fixture
def cache(store: MemoryStore, clock: FakeClock) -> RequestCache:
    """Create a RequestCache on the fake clock with a 10s default TTL."""
    return RequestCache(default_ttl="10s", store=store, clock=clock)
