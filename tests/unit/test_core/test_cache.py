"""Unit tests for the TTL cache."""
import time

import pytest

from ballotguard.core.cache import TTLCache


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return TTLCache(max_size=3, clock=clock)


@pytest.mark.unit
class TestTTLCache:
    """Tests for TTLCache class."""

    def test_basic_get_set(self, cache):
        cache.set("key1", "value1", ttl=10)
        assert cache.get("key1") == "value1"

    def test_get_nonexistent_key(self, cache):
        assert cache.get("nonexistent") is None

    def test_none_is_never_cached(self, cache):
        assert cache.set("key1", None) is False
        assert cache.peek("key1") is None

    def test_entry_expires_after_its_own_ttl(self, cache, clock):
        cache.set("short", "a", ttl=5)
        cache.set("long", "b", ttl=60)

        clock.advance(6)

        assert cache.get("short") is None
        assert cache.get("long") == "b"
        assert cache.is_expired("short")
        assert not cache.is_expired("long")

    def test_zero_ttl_never_expires(self, cache, clock):
        cache.set("forever", "x", ttl=0)
        clock.advance(10 ** 7)
        assert cache.get("forever") == "x"

    def test_expired_entry_served_stale_only_when_allowed(self, cache, clock):
        cache.set("status", {"phase": "active"}, ttl=5, source="database")
        clock.advance(10)

        assert cache.get("status") is None
        entry = cache.lookup("status", allow_expired=True)

        assert entry is not None
        assert entry.data == {"phase": "active"}
        assert entry.stale is True
        assert cache.get_stats()["stale_reads"] == 1

    def test_hit_and_miss_counters(self, cache, clock):
        cache.set("key1", "v", ttl=5)
        cache.get("key1")
        cache.get("key1")
        cache.get("missing")
        clock.advance(6)
        cache.get("key1")

        stats = cache.get_stats()
        assert stats["hits"] == 2
        assert stats["misses"] == 2
        assert stats["hit_rate_percent"] == 50.0
        assert stats["entries"]["key1"]["hits"] == 2
        assert stats["entries"]["key1"]["misses"] == 1

    def test_lru_eviction(self, cache):
        cache.set("key1", "value1")
        cache.set("key2", "value2")
        cache.set("key3", "value3")

        # Touch key1 so key2 becomes least recently used
        cache.get("key1")
        cache.set("key4", "value4")

        assert cache.get("key2") is None
        assert cache.get("key1") == "value1"
        assert cache.get("key4") == "value4"

    def test_sweep_removes_only_expired(self, cache, clock):
        cache.set("old", 1, ttl=1)
        cache.set("new", 2, ttl=100)
        cache.set("pinned", 3, ttl=0)
        clock.advance(5)

        assert cache.sweep() == 1
        assert cache.peek("old") is None
        assert cache.peek("new") is not None
        assert cache.get_stats()["expirations"] == 1

    def test_invalidate_bumps_generation(self, cache):
        cache.set("results:1", "v")
        generation = cache.generation("results:1")

        assert cache.invalidate("results:1") is True
        assert cache.generation("results:1") == generation + 1
        assert cache.get("results:1") is None

    def test_set_if_current_refuses_outdated_fetch(self, cache):
        generation = cache.generation("results:1")
        # A write lands while the fetch is running
        cache.invalidate("results:1")

        assert cache.set_if_current("results:1", "old tally", generation) is False
        assert cache.peek("results:1") is None

    def test_clear_returns_count(self, cache):
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.clear() == 2
        assert cache.get_stats()["size"] == 0

    def test_background_sweeper_evicts(self):
        cache = TTLCache()
        cache.set("gone", 1, ttl=0.01)
        cache.start_sweeper(0.02)
        try:
            deadline = time.time() + 2
            while cache.peek("gone") is not None and time.time() < deadline:
                time.sleep(0.01)
        finally:
            cache.stop_sweeper()
        assert cache.peek("gone") is None
