"""Tests for the connection monitor."""
import threading
import time

import pytest
from sqlalchemy import create_engine, text

from ballotguard.db.monitor import ConnectionMonitor, ConnectionState


def wait_for(predicate, timeout=3.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def broken_engine(tmp_path):
    # Parent directory does not exist, so every connect fails
    engine = create_engine(f"sqlite:///{tmp_path / 'missing' / 'nested' / 'db.sqlite'}")
    yield engine
    engine.dispose()


@pytest.mark.unit
class TestBackoff:
    """Exponential backoff with jitter."""

    def test_delay_bounds(self, db_engine):
        monitor = ConnectionMonitor(db_engine, base_delay=1.0, max_delay=30.0)
        for attempt in range(1, 5):
            delay = monitor.backoff_delay(attempt)
            nominal = 2 ** attempt
            assert nominal * 0.8 <= delay <= nominal * 1.2

    def test_delay_is_capped(self, db_engine):
        monitor = ConnectionMonitor(db_engine, base_delay=1.0, max_delay=30.0, rng=lambda: 1.0)
        assert monitor.backoff_delay(10) == 30.0

    def test_jitter_extremes(self, db_engine):
        low = ConnectionMonitor(db_engine, base_delay=1.0, rng=lambda: 0.0)
        high = ConnectionMonitor(db_engine, base_delay=1.0, rng=lambda: 1.0)
        assert low.backoff_delay(1) == pytest.approx(1.6)
        assert high.backoff_delay(1) == pytest.approx(2.4)


@pytest.mark.unit
class TestMonitoring:
    """Query timing and health reporting."""

    def test_start_marks_connected(self, db_engine):
        monitor = ConnectionMonitor(db_engine)
        monitor.start(run_health_checks=False)
        try:
            assert monitor.state == ConnectionState.CONNECTED
            assert monitor.health_status() == "healthy"
        finally:
            monitor.stop()
        assert monitor.state == ConnectionState.DISCONNECTED

    def test_statements_are_timed(self, db_engine):
        monitor = ConnectionMonitor(db_engine)
        monitor.start(run_health_checks=False)
        try:
            with db_engine.connect() as conn:
                conn.execute(text("SELECT 42"))
            snapshot = monitor.snapshot()
        finally:
            monitor.stop()

        statements = [q["statement"] for q in snapshot["recent_queries"]]
        assert "SELECT 42" in statements
        assert snapshot["reconnect_status"] == "none"

    def test_slow_query_flagged(self, db_engine):
        monitor = ConnectionMonitor(db_engine, slow_query_threshold_ms=100)
        monitor.record_query("SELECT * FROM votes", 250.0)
        monitor.record_query("SELECT 1", 3.0)

        snapshot = monitor.snapshot()
        assert snapshot["slow_queries"] == 1
        assert snapshot["slowest_recent"][0]["statement"] == "SELECT * FROM votes"
        assert snapshot["average_query_ms"] == pytest.approx(126.5)

    def test_stale_connection_triggers_reconnect(self, db_engine, monkeypatch):
        monitor = ConnectionMonitor(db_engine, stale_after_seconds=60)
        triggered = []
        monkeypatch.setattr(monitor, "trigger_reconnect", lambda: triggered.append(1) or True)
        monkeypatch.setattr(monitor, "ping", lambda: True)
        monitor.state = ConnectionState.CONNECTED
        monitor.last_successful_query = time.time() - 120

        monitor.check_health()

        assert triggered == [1]


@pytest.mark.unit
class TestReconnection:
    """Background reconnect sequence."""

    def test_exhaustion_stops_retrying(self, broken_engine):
        exhausted = threading.Event()
        monitor = ConnectionMonitor(
            broken_engine,
            max_retries=2,
            base_delay=0.01,
            max_delay=0.02,
            on_exhausted=lambda m: exhausted.set(),
        )
        monitor.start(run_health_checks=False)
        try:
            assert exhausted.wait(3.0)
            assert wait_for(lambda: not monitor.reconnect_pending)
            snapshot = monitor.snapshot()
            assert snapshot["reconnect_status"] == "maxed"
            assert snapshot["reconnect_attempt"] == 2
            assert snapshot["status"] == "critical"
            # Further failures do not restart the sequence
            assert monitor.trigger_reconnect() is False
        finally:
            monitor.stop()

    def test_reset_rearms_after_exhaustion(self, broken_engine):
        exhausted = threading.Event()
        monitor = ConnectionMonitor(
            broken_engine,
            max_retries=1,
            base_delay=0.01,
            max_delay=0.02,
            on_exhausted=lambda m: exhausted.set(),
        )
        monitor.start(run_health_checks=False)
        try:
            assert exhausted.wait(3.0)
            assert wait_for(lambda: not monitor.reconnect_pending)
            exhausted.clear()

            assert monitor.reset() is True
            assert exhausted.wait(3.0)
        finally:
            monitor.stop()

    def test_recovers_on_a_later_attempt(self, broken_engine, monkeypatch):
        monitor = ConnectionMonitor(broken_engine, max_retries=3, base_delay=0.01, max_delay=0.02)
        outcomes = iter([False, False, True])
        pings = []

        def flaky_ping():
            pings.append(1)
            return next(outcomes)

        monkeypatch.setattr(monitor, "ping", flaky_ping)

        assert monitor.trigger_reconnect() is True
        assert wait_for(lambda: not monitor.reconnect_pending)

        assert len(pings) == 3
        assert monitor.state == ConnectionState.CONNECTED
        assert monitor.attempts == 0
        assert monitor.exhausted is False
        assert monitor.last_reconnect_attempt is not None

    def test_waits_follow_backoff_schedule(self, broken_engine, monkeypatch):
        monitor = ConnectionMonitor(
            broken_engine, max_retries=3, base_delay=0.001, max_delay=1.0, rng=lambda: 0.5
        )
        slept = []
        monkeypatch.setattr(monitor, "ping", lambda: False)
        monkeypatch.setattr(monitor, "_sleep", lambda seconds: slept.append(seconds))

        monitor._reconnect_loop()

        assert slept == pytest.approx([0.002, 0.004, 0.008])
        assert monitor.exhausted is True
        assert monitor.attempts == 3

    def test_stop_cancels_pending_sequence(self, broken_engine):
        exhausted = threading.Event()
        monitor = ConnectionMonitor(
            broken_engine,
            max_retries=3,
            base_delay=5.0,
            max_delay=10.0,
            on_exhausted=lambda m: exhausted.set(),
        )
        monitor.install()
        assert monitor.trigger_reconnect() is True

        started = time.monotonic()
        monitor.stop()

        assert time.monotonic() - started < 1.0
        assert not monitor.reconnect_pending
        assert not exhausted.is_set()
        assert monitor.attempts == 0

    def test_concurrent_triggers_coalesce(self, db_engine):
        monitor = ConnectionMonitor(db_engine, base_delay=0.2, max_delay=0.3)
        monitor.install()
        try:
            results = [monitor.trigger_reconnect() for _ in range(5)]
            assert results.count(True) == 1
            assert monitor.snapshot()["reconnect_status"] == "pending"
            assert wait_for(lambda: not monitor.reconnect_pending)
            assert monitor.state == ConnectionState.CONNECTED
            assert monitor.attempts == 0
        finally:
            monitor.stop()
