"""Value stores backing the request cache."""

from collections import OrderedDict
from collections.abc import Iterator
from typing import Protocol, runtime_checkable

from requestcache.types import CacheEntry


@runtime_checkable
class ValueStore(Protocol):
    """Synchronous value store interface.

    Reads must not suspend: the cache checks the store and registers an
    in-flight request within a single event loop step.
    """

    def get(self, key: str) -> CacheEntry[object] | None:
        """Get a cache entry by key."""
        ...

    def set(self, key: str, entry: CacheEntry[object]) -> None:
        """Store a cache entry, replacing any previous one."""
        ...

    def delete(self, key: str) -> None:
        """Delete a cache entry if present."""
        ...

    def keys(self) -> Iterator[str]:
        """Iterate over stored keys."""
        ...

    def clear(self) -> None:
        """Remove all entries."""
        ...

    def __len__(self) -> int: ...


class MemoryStore:
    """In-memory value store with optional LRU eviction."""

    def __init__(self, max_items: int | None = None) -> None:
        if max_items is not None and max_items < 1:
            raise ValueError("max_items must be at least 1")
        self._entries: OrderedDict[str, CacheEntry[object]] = OrderedDict()
        self._max_items = max_items

    def get(self, key: str) -> CacheEntry[object] | None:
        entry = self._entries.get(key)
        if entry is not None:
            self._entries.move_to_end(key)  # LRU touch
        return entry

    def set(self, key: str, entry: CacheEntry[object]) -> None:
        self._entries[key] = entry
        self._entries.move_to_end(key)
        if self._max_items and len(self._entries) > self._max_items:
            self._entries.popitem(last=False)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def keys(self) -> Iterator[str]:
        # Snapshot so callers may delete while iterating
        return iter(list(self._entries))

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
