"""
LRUCache - Bounded in-memory cache with per-entry TTL.

Features:
- Least-recently-used eviction once max_size entries are held
- Absolute TTL per entry, reset on every set
- Lazy expiry: an expired entry is dropped by the get that finds it
- O(1) get/set/delete (OrderedDict keeps recency order)

None of the operations await, so under a single asyncio loop every call
runs to completion before another task can touch the cache.
"""

from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Generic, TypeVar

from loguru import logger

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """A single cache entry with its absolute expiry."""

    key: str
    value: T
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        """Check if entry is past its expiry."""
        return now > self.expires_at


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    expirations: int = 0
    evictions: int = 0
    size: int = 0
    max_size: int = 0

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        if lookups == 0:
            return 0.0
        return self.hits / lookups

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "expirations": self.expirations,
            "evictions": self.evictions,
            "size": self.size,
            "max_size": self.max_size,
            "hit_rate": f"{self.hit_rate:.2%}",
        }


class LRUCache(Generic[T]):
    """
    Least-recently-used cache with a fixed TTL per entry.

    Usage:
        cache = LRUCache(max_size=100, ttl=timedelta(seconds=30))

        tasks = cache.get("tasks:proj-1:all:all")
        if tasks is None:
            tasks = await load_tasks("proj-1")
            cache.set("tasks:proj-1:all:all", tasks)
    """

    def __init__(
        self,
        max_size: int = 100,
        ttl: timedelta = timedelta(seconds=30),
        clock: Callable[[], datetime] = datetime.now,
        debug: bool = False,
    ):
        if max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {max_size}")

        self._entries: OrderedDict[str, CacheEntry[T]] = OrderedDict()
        self._max_size = max_size
        self._ttl = ttl
        self._clock = clock
        self._debug = debug
        self._stats = CacheStats(max_size=max_size)

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def get(self, key: str, default: Any = None) -> T | Any:
        """
        Get value from cache.

        Returns default if the key is missing or its entry has expired.
        An expired entry is removed as a side effect.
        """
        entry = self._entries.get(key)
        if entry is None:
            self._stats.misses += 1
            self._log(f"MISS: {key[:50]}")
            return default

        if entry.is_expired(self._clock()):
            del self._entries[key]
            self._stats.expirations += 1
            self._stats.misses += 1
            self._log(f"EXPIRED: {key[:50]}")
            return default

        self._entries.move_to_end(key)
        self._stats.hits += 1
        self._log(f"HIT: {key[:50]}")
        return entry.value

    def set(self, key: str, value: T) -> None:
        """
        Insert or replace a value and mark it most recently used.

        Inserting a new key at capacity evicts the least recently used entry
        first.
        """
        expires_at = self._clock() + self._ttl

        entry = self._entries.get(key)
        if entry is not None:
            entry.value = value
            entry.expires_at = expires_at
            self._entries.move_to_end(key)
            self._log(f"UPDATE: {key[:50]}")
            return

        if len(self._entries) >= self._max_size:
            evicted_key, _ = self._entries.popitem(last=False)
            self._stats.evictions += 1
            self._log(f"EVICT: {evicted_key[:50]}")

        self._entries[key] = CacheEntry(key=key, value=value, expires_at=expires_at)
        self._log(f"SET: {key[:50]} (TTL: {self._ttl.total_seconds()}s)")

    def delete(self, key: str) -> bool:
        """Delete a specific key. Returns True if it was present."""
        if self._entries.pop(key, None) is None:
            return False
        self._log(f"DELETE: {key[:50]}")
        return True

    def invalidate(self, prefix: str) -> int:
        """
        Remove every entry whose key starts with prefix.

        Returns:
            Number of entries removed
        """
        doomed = [key for key in self._entries if key.startswith(prefix)]
        for key in doomed:
            del self._entries[key]

        if doomed:
            self._log(f"INVALIDATE: {len(doomed)} entries under '{prefix}'")
        return len(doomed)

    def clear(self) -> None:
        """Clear all cache entries."""
        count = len(self._entries)
        self._entries.clear()
        self._log(f"CLEAR: {count} entries removed")

    def cleanup_expired(self) -> int:
        """Remove all expired entries. Returns count of removed entries."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]

        self._stats.expirations += len(expired)
        if expired:
            self._log(f"CLEANUP: {len(expired)} expired entries removed")
        return len(expired)

    def keys(self) -> list[str]:
        """Keys from least to most recently used, expired ones included."""
        return list(self._entries)

    def get_stats(self) -> CacheStats:
        """Get cache statistics."""
        self._stats.size = len(self._entries)
        return self._stats

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        # Membership does not count as a use.
        entry = self._entries.get(key)  # type: ignore[arg-type]
        return entry is not None and not entry.is_expired(self._clock())

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[LRUCache] {message}")
