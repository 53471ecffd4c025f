"""Tests for the resilient data access layer."""
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from ballotguard.core.cache import TTLCache
from ballotguard.core.exceptions import (
    InvalidInput,
    NoActiveElection,
    StorageTimeout,
    StorageUnavailable,
)
from ballotguard.db.access import DataAccessLayer
from ballotguard.db.circuit import CircuitBreaker, CircuitState
from ballotguard.db.monitor import ConnectionMonitor


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
def layer(db_engine, clock):
    """A layer with a controllable cache clock and short timeouts."""
    dal = DataAccessLayer(
        db_engine,
        cache=TTLCache(clock=clock),
        monitor=ConnectionMonitor(db_engine, base_delay=0.01, max_delay=0.02),
        breaker=CircuitBreaker("reads", failure_threshold=2, reset_timeout=30, clock=clock),
        query_timeout=0.2,
        write_timeout=0.2,
        max_workers=2,
    )
    dal.start(background=False)
    yield dal
    dal.stop()


def select_one(db):
    return db.execute(text("SELECT 1")).scalar()


def slow(db):
    time.sleep(0.6)
    return "late"


def storage_down(db):
    raise OperationalError("SELECT 1", {}, Exception("unable to open database file"))


@pytest.mark.unit
class TestRun:
    """Bounded execution."""

    def test_returns_result(self, layer):
        assert layer.run(select_one) == 1

    def test_not_started(self, db_engine):
        dal = DataAccessLayer(db_engine)
        assert not dal.started
        with pytest.raises(StorageUnavailable):
            dal.run(select_one)

    def test_timeout_raises_storage_timeout(self, layer):
        with pytest.raises(StorageTimeout) as exc_info:
            layer.run(slow)
        assert exc_info.value.retryable is True
        assert exc_info.value.status_code == 503

    def test_connection_error_maps_to_unavailable(self, layer):
        with pytest.raises(StorageUnavailable):
            layer.run(storage_down)
        assert layer.monitor.connection_issues == 1
        assert "unable to open database file" in layer.monitor.last_error

    def test_domain_error_propagates(self, layer):
        def no_election(db):
            raise NoActiveElection()

        with pytest.raises(NoActiveElection):
            layer.run(no_election)


@pytest.mark.unit
class TestReadThrough:
    """Cache-first reads with stale and default fallbacks."""

    def test_loads_then_serves_cache(self, layer):
        calls = []

        def loader(db):
            calls.append(1)
            return {"value": select_one(db)}

        first = layer.read_through("k", loader, ttl=30)
        second = layer.read_through("k", loader, ttl=30)

        assert first.source == "database"
        assert second.source == "cache"
        assert second.data == {"value": 1}
        assert second.stale is False
        assert len(calls) == 1

    def test_expired_entry_is_reloaded(self, layer, clock):
        layer.read_through("k", lambda db: "v1", ttl=5)
        clock.advance(6)

        read = layer.read_through("k", lambda db: "v2", ttl=5)

        assert read.data == "v2"
        assert read.source == "database"

    def test_stale_fallback_on_timeout(self, layer, clock):
        layer.read_through("k", lambda db: "last known", ttl=5)
        clock.advance(60)

        read = layer.read_through("k", slow, ttl=5)

        assert read.data == "last known"
        assert read.source == "stale-cache"
        assert read.stale is True
        assert layer.cache.peek("k").stale is True

    def test_stale_fallback_on_connection_failure(self, layer, clock):
        layer.read_through("k", lambda db: "last known", ttl=5)
        clock.advance(60)

        read = layer.read_through("k", storage_down, ttl=5)

        assert read.source == "stale-cache"

    def test_default_when_nothing_cached(self, layer):
        read = layer.read_through("k", storage_down, ttl=5, default_factory=lambda: {"status": "ended"})

        assert read.data == {"status": "ended"}
        assert read.source == "default"
        assert read.stale is True
        assert layer.cache.peek("k") is None

    def test_raises_without_cache_or_default(self, layer):
        with pytest.raises(StorageUnavailable):
            layer.read_through("k", storage_down, ttl=5)

    def test_domain_errors_do_not_fall_back(self, layer, clock):
        layer.read_through("k", lambda db: "old", ttl=5)
        clock.advance(60)

        def missing(db):
            raise NoActiveElection()

        with pytest.raises(NoActiveElection):
            layer.read_through("k", missing, ttl=5, default_factory=lambda: "default")

    def test_concurrent_misses_load_once(self, layer):
        calls = []
        lock = threading.Lock()

        def loader(db):
            with lock:
                calls.append(1)
            time.sleep(0.05)
            return "value"

        with ThreadPoolExecutor(max_workers=4) as pool:
            reads = list(pool.map(lambda _: layer.read_through("k", loader, ttl=30), range(4)))

        assert [r.data for r in reads] == ["value"] * 4
        assert sorted(r.source for r in reads) == ["cache", "cache", "cache", "database"]
        assert len(calls) == 1

    def test_waiters_do_not_queue_behind_a_hung_query(self, db_engine):
        release = threading.Event()
        calls = []
        dal = DataAccessLayer(
            db_engine,
            monitor=ConnectionMonitor(db_engine),
            query_timeout=0.3,
            max_workers=8,
        )
        dal.start(background=False)

        def hung(db):
            calls.append(1)
            release.wait(5)
            return "late"

        readers = 6
        barrier = threading.Barrier(readers)

        def timed_read(_):
            barrier.wait()
            started = time.monotonic()
            read = dal.read_through("electionStatus", hung, ttl=30, default_factory=lambda: "closed")
            return time.monotonic() - started, read

        try:
            with ThreadPoolExecutor(max_workers=readers) as pool:
                results = list(pool.map(timed_read, range(readers)))
        finally:
            release.set()
            dal.stop()

        assert max(elapsed for elapsed, _ in results) < 0.6
        assert {read.source for _, read in results} == {"default"}
        assert len(calls) == 1

    def test_fallback_on_listed_errors(self, layer, clock):
        layer.read_through("k", lambda db: "last known", ttl=5)
        clock.advance(60)

        def corrupt(db):
            raise InvalidInput("date")

        read = layer.read_through("k", corrupt, ttl=5, fallback_on=(InvalidInput,))

        assert read.source == "stale-cache"
        assert layer.breaker.failure_count == 0

    def test_fetch_overtaken_by_write_is_not_cached(self, layer):
        def loader(db):
            # A write invalidates the key while this read is in flight
            layer.invalidate("k")
            return "outdated"

        read = layer.read_through("k", loader, ttl=30)

        assert read.data == "outdated"
        assert layer.cache.peek("k") is None


@pytest.mark.unit
class TestReadCircuit:
    """Reads fail fast while the database keeps failing."""

    def test_open_circuit_serves_stale_without_querying(self, layer, clock):
        layer.read_through("k", lambda db: "last known", ttl=5)
        clock.advance(60)
        for _ in range(2):
            layer.read_through("k", storage_down, ttl=5)
        assert layer.breaker.state == CircuitState.OPEN

        calls = []
        read = layer.read_through("k", lambda db: calls.append(1) or "fresh", ttl=5)

        assert read.source == "stale-cache"
        assert read.data == "last known"
        assert calls == []
        assert layer.stats()["circuit"]["state"] == "open"

    def test_open_circuit_without_cache_serves_default(self, layer):
        for _ in range(2):
            with pytest.raises(StorageUnavailable):
                layer.read_through("k", storage_down, ttl=5)

        read = layer.read_through("k", select_one, ttl=5, default_factory=lambda: "closed")

        assert read.source == "default"
        assert layer.breaker.snapshot()["rejected"] == 1

    def test_recovers_after_reset_timeout(self, layer, clock):
        for _ in range(2):
            layer.read_through("k", storage_down, ttl=5, default_factory=lambda: "closed")
        clock.advance(31)

        first = layer.read_through("k", select_one, ttl=5)
        assert first.source == "database"
        assert layer.breaker.state == CircuitState.HALF_OPEN

        clock.advance(6)
        layer.read_through("k", select_one, ttl=5)
        assert layer.breaker.state == CircuitState.CLOSED

    def test_reset_closes_circuit(self, layer):
        for _ in range(2):
            layer.read_through("k", storage_down, ttl=5, default_factory=lambda: "closed")

        layer.reset()

        assert layer.breaker.state == CircuitState.CLOSED
        assert layer.read_through("k", select_one, ttl=5).source == "database"


@pytest.mark.unit
class TestWrite:
    """Writes and cache invalidation."""

    def test_write_invalidates_keys(self, layer):
        layer.cache.set("results:1", {"old": True})

        assert layer.write(select_one, invalidate=["results:1"]) == 1
        assert layer.cache.peek("results:1") is None

    def test_failed_write_still_invalidates(self, layer):
        layer.cache.set("results:1", {"old": True})

        with pytest.raises(StorageTimeout):
            layer.write(slow, invalidate=["results:1"])
        assert layer.cache.peek("results:1") is None

    def test_stats_shape(self, layer):
        stats = layer.stats()
        assert stats["database"]["status"] == "healthy"
        assert "hits" in stats["cache"]
