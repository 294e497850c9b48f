"""Bounded, time-limited cache for per-user progress summaries.

Entries expire after ``ttl_seconds`` and the cache never holds more than
``max_entries`` users (oldest inserted are evicted first). Every write to
a user's stats invalidates that user's entry before the write's caller
returns, so readers never see a value older than the last committed
write in this process. Readers capture ``generation(user_id)`` before
loading and pass it to ``set``; a fill whose generation was bumped by an
invalidation in the meantime is dropped.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from typing import Any

from campus_connect.config import get_settings


class StatsCache:
    """Process-local TTL + size bounded cache keyed by user id."""

    def __init__(self, ttl_seconds: float = 300.0, max_entries: int = 1024) -> None:
        self._entries: OrderedDict[int, tuple[float, Any]] = OrderedDict()
        self._generations: dict[int, int] = {}
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._hits = 0
        self._misses = 0

    def get(self, user_id: int) -> Any | None:  # noqa: ANN401
        """Return the cached value, or None if absent or expired."""
        now = time.monotonic()
        self._evict(now)

        entry = self._entries.get(user_id)
        if entry is None:
            self._misses += 1
            return None
        self._hits += 1
        return entry[1]

    def generation(self, user_id: int) -> int:
        return self._generations.get(user_id, 0)

    def set(self, user_id: int, value: Any, generation: int | None = None) -> bool:  # noqa: ANN401
        """Store ``value`` unless ``generation`` is stale. Returns whether it was stored."""
        if generation is not None and generation != self.generation(user_id):
            return False
        now = time.monotonic()
        self._entries.pop(user_id, None)
        self._entries[user_id] = (now, value)

        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)
        return True

    def invalidate(self, user_id: int) -> None:
        self._entries.pop(user_id, None)
        self._generations[user_id] = self.generation(user_id) + 1

    def clear(self) -> None:
        self._entries.clear()

    def _evict(self, now: float) -> None:
        """Remove entries older than the TTL (insertion order == age order)."""
        cutoff = now - self._ttl
        while self._entries:
            _key, (stored_at, _value) = next(iter(self._entries.items()))
            if stored_at >= cutoff:
                break
            self._entries.popitem(last=False)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def stats(self) -> dict[str, int]:
        return {
            "entries": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
        }


_cache: StatsCache | None = None


def get_stats_cache() -> StatsCache:
    """Return the process-wide progress cache, built from settings on first use."""
    global _cache  # noqa: PLW0603
    if _cache is None:
        settings = get_settings()
        _cache = StatsCache(
            ttl_seconds=settings.stats_cache_ttl_seconds,
            max_entries=settings.stats_cache_max_entries,
        )
    return _cache
