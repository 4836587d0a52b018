"""
Result cache for executed report SQL.

In-memory TTL cache keyed by the final rendered SQL, so re-running a report
with identical filters does not hit the warehouse again.  Process-local
(dict-based); oldest entries are evicted once ``max_size`` is reached.
"""
from __future__ import annotations

import hashlib
import time
import threading
from dataclasses import dataclass
from typing import Any

from sqlreport.core.config import get_settings
from sqlreport.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_SIZE = 128


@dataclass
class CacheEntry:
    """A single cached result."""
    key: str
    value: Any
    created_at: float
    ttl: float
    hit_count: int = 0

    @property
    def is_expired(self) -> bool:
        return (time.time() - self.created_at) > self.ttl


class ResultCache:
    """Thread-safe in-memory TTL cache of warehouse results.

    Parameters
    ----------
    ttl : float
        Time-to-live in seconds for each entry.
    max_size : int
        Maximum number of entries. Oldest entries are evicted when full.
    """

    def __init__(self, ttl: float, max_size: int = DEFAULT_MAX_SIZE):
        self._store: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._ttl = ttl
        self._max_size = max_size
        self._hits = 0
        self._misses = 0

    # ── Public API ──────────────────────────────────────

    def get(self, sql: str) -> Any | None:
        """Retrieve a cached result, or ``None`` on miss / expiry."""
        key = self._make_key(sql)
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.is_expired:
                del self._store[key]
                self._misses += 1
                return None
            entry.hit_count += 1
            self._hits += 1
            logger.debug("Cache HIT key=%s hits=%d", key[:16], entry.hit_count)
            return entry.value

    def put(self, sql: str, value: Any) -> None:
        key = self._make_key(sql)
        with self._lock:
            if len(self._store) >= self._max_size and key not in self._store:
                self._evict_oldest()
            self._store[key] = CacheEntry(
                key=key, value=value, created_at=time.time(), ttl=self._ttl,
            )
        logger.debug("Cache PUT key=%s size=%d", key[:16], len(self._store))

    def invalidate(self, sql: str | None = None) -> int:
        """Remove one entry or flush all. Returns number of entries removed."""
        with self._lock:
            if sql is None:
                count = len(self._store)
                self._store.clear()
                return count
            key = self._make_key(sql)
            if key in self._store:
                del self._store[key]
                return 1
            return 0

    def stats(self) -> dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._store),
                "max_size": self._max_size,
                "ttl_seconds": self._ttl,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(self._hits / total, 3) if total else 0.0,
            }

    # ── Internals ───────────────────────────────────────

    @staticmethod
    def _make_key(sql: str) -> str:
        return hashlib.sha256(sql.strip().encode()).hexdigest()

    def _evict_oldest(self) -> None:
        if not self._store:
            return
        oldest_key = min(self._store, key=lambda k: self._store[k].created_at)
        del self._store[oldest_key]


_cache: ResultCache | None = None


def get_cache() -> ResultCache:
    """Return the process-wide cache instance."""
    global _cache
    if _cache is None:
        _cache = ResultCache(ttl=get_settings().result_cache_ttl_seconds)
    return _cache
