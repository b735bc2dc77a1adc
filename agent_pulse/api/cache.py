"""
In-process TTL cache for dashboard reads.

Process-scoped and never relied on for correctness: a miss simply means
the upstream is called. Expired entries are kept until evicted so a failing
upstream can still be answered from stale data.
"""

import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


@dataclass
class CacheEntry:
    value: Any
    stored_at: float

    def age(self, now: float) -> float:
        return now - self.stored_at


class TTLCache:
    """
    Bounded LRU cache with a per-entry time-to-live.

    Args:
        ttl_seconds: Entries older than this are treated as misses by get().
        max_entries: Least recently used entries are evicted beyond this.
        clock: Monotonic time source.
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int = 32,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> Any | None:
        """Fresh value for ``key``, or None if missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.age(self._clock()) >= self._ttl:
            return None
        self._entries.move_to_end(key)
        return entry.value

    def get_stale(self, key: str) -> Any | None:
        """Value for ``key`` regardless of age."""
        entry = self._entries.get(key)
        return entry.value if entry else None

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = CacheEntry(value=value, stored_at=self._clock())
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()
