"""Time-boxed in-memory cache owned by the news collector."""

import time
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    value: V
    stored_at: float


class TTLCache(Generic[V]):
    """String-keyed cache whose entries expire ``ttl`` seconds after insertion.

    Expiry is checked on read; expired entries are evicted then. A TTL of
    zero or less disables caching (every read misses).

    Example:
        >>> cache = TTLCache(ttl=3600)
        >>> cache.set("zhihu", items)
        >>> cache.get("zhihu")  # items, until an hour has passed
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry[V]] = {}

    def get(self, key: str) -> V | None:
        """Return the cached value, or None if missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self.ttl <= 0 or self._clock() - entry.stored_at >= self.ttl:
            del self._entries[key]
            return None
        return entry.value

    def set(self, key: str, value: V) -> None:
        if self.ttl <= 0:
            return
        self._entries[key] = CacheEntry(value=value, stored_at=self._clock())

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None
