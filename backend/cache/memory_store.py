"""
Memory Store Implementation
内存存储实现

Thread-safe in-memory key/value storage backing the response cache.

Features:
- Thread-safe operations with Lock
- Per-entry TTL expiration (ttl=None never expires)
- LRU eviction when max entries or max bytes exceeded
- Injectable clock for deterministic expiry in tests
"""

import time
from collections import OrderedDict
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Dict, Optional


@dataclass
class CacheEntry:
    """
    Cache entry data structure
    缓存条目数据结构
    """
    key: str
    value: Any
    stored_at: float                 # Clock reading when written
    ttl: Optional[float] = None      # Seconds to live, None = immutable
    size: int = 0                    # Bytes counted against max_bytes

    def is_expired(self, now: float) -> bool:
        """Check if this entry has expired at ``now``"""
        if self.ttl is None:
            return False
        return now - self.stored_at >= self.ttl


class MemoryStore:
    """
    Thread-safe in-memory key/value store
    线程安全的内存键值存储

    Entries are replaced wholesale on ``put``; nothing is ever merged.
    """

    def __init__(
        self,
        max_entries: int = 1000,
        clock: Optional[Callable[[], float]] = None,
        max_bytes: Optional[int] = None,
        sizer: Optional[Callable[[Any], int]] = None,
    ):
        """
        Initialize memory store

        Args:
            max_entries: Maximum number of entries to keep (LRU evicted)
            clock: Time source returning seconds, defaults to time.monotonic
            max_bytes: Upper bound on the summed entry sizes, None for no bound
            sizer: Returns the size of a value in bytes, required with max_bytes
        """
        if max_bytes is not None and sizer is None:
            raise ValueError("max_bytes requires a sizer")

        self._store: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = Lock()
        self._max_entries = max_entries
        self._max_bytes = max_bytes
        self._sizer = sizer
        self._clock = clock if clock is not None else time.monotonic
        self._total_bytes = 0
        self._hits = 0
        self._misses = 0
        self._skipped = 0

    def get(self, key: str) -> Optional[Any]:
        """
        Get value by key
        根据键获取值

        Returns:
            Stored value if present and not expired, None otherwise
        """
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.is_expired(self._clock()):
                self._remove(key)
                self._misses += 1
                return None
            # LRU tracking
            self._store.move_to_end(key)
            self._hits += 1
            return entry.value

    def put(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """
        Store value under key
        存储值

        A value larger than ``max_bytes`` on its own is not stored.

        Args:
            key: Cache key
            value: Any value, stored as-is
            ttl: Seconds to live, None for an immutable entry
        """
        size = self._sizer(value) if self._sizer else 0

        with self._lock:
            self._remove(key)
            if self._max_bytes is not None and size > self._max_bytes:
                self._skipped += 1
                return

            self._store[key] = CacheEntry(
                key=key,
                value=value,
                stored_at=self._clock(),
                ttl=ttl,
                size=size,
            )
            self._total_bytes += size

            # Expired entries go first, then least recently used
            if self._over_limit():
                self._cleanup_expired()
            while self._over_limit():
                oldest, _ = next(iter(self._store.items()))
                self._remove(oldest)

    def stats(self) -> Dict[str, Any]:
        """
        Get cache statistics
        获取缓存统计信息
        """
        with self._lock:
            total = self._hits + self._misses
            return {
                "total_entries": len(self._store),
                "max_entries": self._max_entries,
                "total_bytes": self._total_bytes,
                "max_bytes": self._max_bytes,
                "skipped_oversize": self._skipped,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(self._hits / total, 3) if total else 0.0,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def _over_limit(self) -> bool:
        if len(self._store) > self._max_entries:
            return True
        return self._max_bytes is not None and self._total_bytes > self._max_bytes

    def _remove(self, key: str) -> None:
        """Drop one entry (internal, assumes lock held)"""
        entry = self._store.pop(key, None)
        if entry is not None:
            self._total_bytes -= entry.size

    def _cleanup_expired(self) -> int:
        """
        Remove expired entries (internal, assumes lock held)
        清理过期条目

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [k for k, v in self._store.items() if v.is_expired(now)]
        for k in expired:
            self._remove(k)
        return len(expired)
