"""
In-memory cache with per-entry TTL, stale reads and background sweeping.

This module backs the resilient data access layer. Election status, settings
and tallies are cached here so that status queries stay answerable while the
database is slow or unreachable.

Design decisions:
- In-memory OrderedDict storage with LRU eviction (single-server deployment)
- Each entry carries its own TTL; a TTL of 0 never expires
- Expired entries are kept until swept so they can serve as an outage fallback
  (``allow_expired=True``); an entry served that way is flagged ``stale``
- Reentrant lock (RLock) for thread safety in sync and async contexts
- Per-key generations: invalidation bumps the generation, and a fetch started
  before the bump may not store its (now outdated) result
- Per-key fetch locks so concurrent misses on one key query the database once
"""

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

import structlog

logger = structlog.get_logger(__name__)


@dataclass
class CacheEntry:
    """A cached value and its bookkeeping."""

    data: Any
    created_at: float
    last_accessed: float
    ttl: float
    source: str = "unknown"
    hits: int = 0
    misses: int = 0
    stale: bool = False

    def is_expired(self, now: float) -> bool:
        if self.ttl == 0:
            return False
        return now - self.created_at > self.ttl

    def age(self, now: float) -> float:
        return now - self.created_at


class TTLCache:
    """
    Named-entry TTL cache with thread-safe operations and LRU eviction.

    Storage format: OrderedDict[cache_key: CacheEntry]

    Hits and misses are tracked globally and per entry. A read of an expired
    entry counts as a miss unless the caller explicitly allows expired data,
    in which case the entry is returned and marked stale.
    """

    def __init__(self, max_size: int = 100, clock: Callable[[], float] = time.time):
        """
        Initialize the cache.

        Args:
            max_size: Maximum number of entries to store (default: 100)
            clock: Time source in seconds, injectable for tests
        """
        self._cache: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.RLock()
        self._max_size = max_size
        self._clock = clock
        self._generations: Dict[str, int] = {}
        self._fetch_locks: Dict[str, threading.Lock] = {}
        self._hits = 0
        self._misses = 0
        self._expirations = 0
        self._stale_reads = 0
        self._sweeper: Optional[threading.Thread] = None
        self._sweeper_stop = threading.Event()

    def lookup(self, key: str, allow_expired: bool = False) -> Optional[CacheEntry]:
        """Return the entry for ``key`` and record the hit or miss."""
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self._misses += 1
                return None

            now = self._clock()
            if entry.is_expired(now):
                if not allow_expired:
                    entry.misses += 1
                    self._misses += 1
                    return None
                entry.stale = True
                self._stale_reads += 1

            entry.hits += 1
            entry.last_accessed = now
            self._hits += 1
            self._cache.move_to_end(key)
            return entry

    def get(self, key: str, allow_expired: bool = False) -> Optional[Any]:
        """Get a cached value, or None when absent (or expired and not allowed)."""
        entry = self.lookup(key, allow_expired=allow_expired)
        return entry.data if entry is not None else None

    def peek(self, key: str) -> Optional[CacheEntry]:
        """Return the raw entry without touching statistics or LRU order."""
        with self._lock:
            return self._cache.get(key)

    def set(self, key: str, value: Any, ttl: float = 300.0, source: str = "unknown") -> bool:
        """
        Store value with its own TTL.

        Refuses to cache None so a missing record can never masquerade as a
        cached answer. Evicts least recently used entries past ``max_size``.
        """
        if value is None:
            logger.warning("cache_set_rejected_none", key=key)
            return False

        with self._lock:
            now = self._clock()
            if key in self._cache:
                del self._cache[key]
            self._cache[key] = CacheEntry(
                data=value,
                created_at=now,
                last_accessed=now,
                ttl=ttl,
                source=source,
            )
            while len(self._cache) > self._max_size:
                evicted, _ = self._cache.popitem(last=False)
                logger.debug("cache_evicted", key=evicted)
        return True

    def generation(self, key: str) -> int:
        with self._lock:
            return self._generations.get(key, 0)

    def set_if_current(
        self,
        key: str,
        value: Any,
        generation: int,
        ttl: float = 300.0,
        source: str = "unknown",
    ) -> bool:
        """Store ``value`` only if ``key`` was not invalidated since ``generation``."""
        with self._lock:
            if self._generations.get(key, 0) != generation:
                logger.debug("cache_set_skipped_outdated", key=key)
                return False
            return self.set(key, value, ttl=ttl, source=source)

    def is_expired(self, key: str) -> bool:
        """True when ``key`` is absent or past its TTL."""
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return True
            return entry.is_expired(self._clock())

    def invalidate(self, key: str) -> bool:
        """Remove ``key`` and bump its generation."""
        with self._lock:
            self._generations[key] = self._generations.get(key, 0) + 1
            removed = self._cache.pop(key, None) is not None
        if removed:
            logger.debug("cache_invalidated", key=key)
        return removed

    def fetch_lock(self, key: str) -> threading.Lock:
        """Lock serialising database fetches for one key."""
        with self._lock:
            lock = self._fetch_locks.get(key)
            if lock is None:
                lock = self._fetch_locks[key] = threading.Lock()
            return lock

    def sweep(self) -> int:
        """Evict expired entries. Returns the number removed."""
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._cache.items() if entry.is_expired(now)]
            for key in expired:
                del self._cache[key]
            self._expirations += len(expired)

        if expired:
            logger.info("cache_swept", expired=len(expired))
        return len(expired)

    def clear(self) -> int:
        """Clear entire cache, bumping every generation."""
        with self._lock:
            count = len(self._cache)
            for key in list(self._cache):
                self._generations[key] = self._generations.get(key, 0) + 1
            self._cache.clear()
        return count

    def start_sweeper(self, interval_seconds: float) -> None:
        """Start the background sweep thread (idempotent)."""
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._sweeper_stop.clear()

        def _run() -> None:
            while not self._sweeper_stop.wait(interval_seconds):
                try:
                    self.sweep()
                except Exception:
                    logger.exception("cache_sweep_failed")

        self._sweeper = threading.Thread(target=_run, name="cache-sweeper", daemon=True)
        self._sweeper.start()

    def stop_sweeper(self) -> None:
        self._sweeper_stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=1.0)
        self._sweeper = None

    def get_stats(self) -> Dict[str, Any]:
        """
        Get cache statistics for monitoring.

        Returns:
            Dictionary with global counters (hits, misses, expirations,
            stale reads, hit rate) and per-entry details (age, TTL, source,
            hits, misses, stale flag).
        """
        with self._lock:
            total = self._hits + self._misses
            hit_rate = (self._hits / total * 100) if total > 0 else 0
            now = self._clock()

            entries = {}
            for key, entry in self._cache.items():
                entries[key] = {
                    "age_seconds": round(entry.age(now), 2),
                    "ttl_seconds": entry.ttl,
                    "expired": entry.is_expired(now),
                    "stale": entry.stale,
                    "source": entry.source,
                    "hits": entry.hits,
                    "misses": entry.misses,
                    "cached_at": datetime.fromtimestamp(entry.created_at).isoformat(),
                    "last_accessed": datetime.fromtimestamp(entry.last_accessed).isoformat(),
                }

            return {
                "size": len(self._cache),
                "max_size": self._max_size,
                "hits": self._hits,
                "misses": self._misses,
                "expirations": self._expirations,
                "stale_reads": self._stale_reads,
                "hit_rate_percent": round(hit_rate, 2),
                "entries": entries,
            }
