"""Bounded in-process LRU cache with per-entry TTL.

Fronts read-heavy aggregates (per-user stats snapshots, leaderboard pages,
terminal job status). The cache is never a source of truth: every failure
degrades to a miss and the caller recomputes from the database.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from threading import RLock
from typing import Any

import structlog

logger = structlog.get_logger()

Clock = Callable[[], float]


@dataclass(slots=True)
class CacheEntry:
    value: Any
    expires_at: float


class ScoreCache:
    """LRU + TTL key/value store.

    - ``get`` refreshes recency; an expired entry is evicted and reported as a miss.
    - ``put`` at capacity evicts the least recently touched entry.
    - ``invalidate`` drops every key starting with a prefix.
    - ``sweep`` drops entries expired for longer than a grace period.

    Every ``delete``/``invalidate``/``clear`` bumps a generation counter. A
    reader that captured ``generation`` before loading from the database passes
    it to ``put(..., since=...)``; the put is dropped when the key was
    invalidated in between, so a pre-commit snapshot never outlives the write.
    """

    def __init__(
        self,
        max_entries: int = 500,
        default_ttl: float = 30.0,
        clock: Clock = time.monotonic,
    ) -> None:
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._max_entries = max(1, max_entries)
        self._default_ttl = default_ttl
        self._clock = clock
        self._lock = RLock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0
        self.stale_puts = 0
        self._generation = 0
        self._key_marks: OrderedDict[str, int] = OrderedDict()
        self._prefix_marks: dict[str, int] = {}
        # Marks older than this were dropped to bound memory; any load that
        # started before it is treated as stale.
        self._mark_floor = 0

    @property
    def generation(self) -> int:
        return self._generation

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None on miss. Never raises."""
        try:
            with self._lock:
                entry = self._entries.get(key)
                if entry is None:
                    self.misses += 1
                    return None
                now = self._clock()
                if now >= entry.expires_at:
                    del self._entries[key]
                    self.misses += 1
                    return None
                self._entries.move_to_end(key)
                self.hits += 1
                return entry.value
        except Exception:
            logger.warning("cache_get_failed", key=key, exc_info=True)
            return None

    def put(self, key: str, value: Any, ttl: float | None = None, since: int | None = None) -> None:
        """Insert or replace a value. None values are not cached.

        With ``since``, the put is skipped if ``key`` was invalidated after that generation.
        """
        if value is None:
            return
        lifetime = self._default_ttl if ttl is None else ttl
        try:
            with self._lock:
                if since is not None and self._invalidated_since(key, since):
                    self.stale_puts += 1
                    logger.debug("cache_put_stale", key=key)
                    return
                now = self._clock()
                if key in self._entries:
                    self._entries.move_to_end(key)
                elif len(self._entries) >= self._max_entries:
                    evicted, _ = self._entries.popitem(last=False)
                    self.evictions += 1
                    logger.debug("cache_evicted", key=evicted)
                self._entries[key] = CacheEntry(value=value, expires_at=now + lifetime)
        except Exception:
            logger.warning("cache_put_failed", key=key, exc_info=True)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)
            self._mark_key(key)

    def invalidate(self, prefix: str) -> int:
        """Remove every key beginning with ``prefix``. Returns the number removed."""
        with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for k in doomed:
                del self._entries[k]
            self._generation += 1
            self._prefix_marks[prefix] = self._generation
        if doomed:
            logger.debug("cache_invalidated", prefix=prefix, count=len(doomed))
        return len(doomed)

    def sweep(self, grace: float = 0.0) -> int:
        """Drop entries whose expiry is at least ``grace`` seconds in the past."""
        with self._lock:
            cutoff = self._clock() - grace
            doomed = [k for k, e in self._entries.items() if e.expires_at <= cutoff]
            for k in doomed:
                del self._entries[k]
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._generation += 1
            self._key_marks.clear()
            self._prefix_marks.clear()
            self._mark_floor = self._generation

    def _mark_key(self, key: str) -> None:
        self._generation += 1
        self._key_marks[key] = self._generation
        self._key_marks.move_to_end(key)
        if len(self._key_marks) > self._max_entries:
            _, dropped = self._key_marks.popitem(last=False)
            self._mark_floor = max(self._mark_floor, dropped)

    def _invalidated_since(self, key: str, since: int) -> bool:
        if since < self._mark_floor:
            return True
        if self._key_marks.get(key, 0) > since:
            return True
        return any(mark > since and key.startswith(prefix) for prefix, mark in self._prefix_marks.items())

    async def get_or_load(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        ttl: float | None = None,
    ) -> Any:
        """Return the cached value or await ``loader`` and cache its result."""
        value = self.get(key)
        if value is not None:
            return value
        since = self.generation
        value = await loader()
        self.put(key, value, ttl, since=since)
        return value

    def stats(self) -> dict[str, int]:
        return {
            "entries": len(self._entries),
            "max_entries": self._max_entries,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "stale_puts": self.stale_puts,
        }
