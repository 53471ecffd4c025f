"""Tests for the read circuit breaker."""
import pytest

from ballotguard.core.exceptions import CircuitOpen, NoActiveElection, StorageTimeout
from ballotguard.db.circuit import CircuitBreaker, CircuitState


class FakeClock:
    def __init__(self, now: float = 500.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def failing():
    raise StorageTimeout()


def trip(breaker, times):
    for _ in range(times):
        with pytest.raises(StorageTimeout):
            breaker.call(failing)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def breaker(clock):
    return CircuitBreaker("reads", failure_threshold=3, reset_timeout=30, success_threshold=2, clock=clock)


@pytest.mark.unit
class TestCircuitBreaker:
    """closed -> open -> half_open -> closed."""

    def test_passes_results_through(self, breaker):
        assert breaker.call(lambda x: x * 2, 21) == 42
        assert breaker.state == CircuitState.CLOSED

    def test_opens_after_threshold(self, breaker):
        trip(breaker, 2)
        assert breaker.state == CircuitState.CLOSED

        trip(breaker, 1)
        assert breaker.state == CircuitState.OPEN
        assert breaker.snapshot()["last_tripped"] is not None

    def test_success_resets_failure_count(self, breaker):
        trip(breaker, 2)
        breaker.call(lambda: "ok")
        trip(breaker, 2)
        assert breaker.state == CircuitState.CLOSED

    def test_open_circuit_fails_fast(self, breaker):
        trip(breaker, 3)
        calls = []

        with pytest.raises(CircuitOpen) as exc_info:
            breaker.call(lambda: calls.append(1))

        assert calls == []
        assert exc_info.value.retryable is True
        assert breaker.snapshot()["rejected"] == 1

    def test_half_open_then_closed(self, breaker, clock):
        trip(breaker, 3)
        clock.advance(31)

        assert breaker.call(lambda: "trial") == "trial"
        assert breaker.state == CircuitState.HALF_OPEN

        breaker.call(lambda: "trial")
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0

    def test_half_open_failure_reopens(self, breaker, clock):
        trip(breaker, 3)
        clock.advance(31)

        trip(breaker, 1)

        assert breaker.state == CircuitState.OPEN
        with pytest.raises(CircuitOpen):
            breaker.call(lambda: "too soon")

    def test_domain_errors_do_not_count(self, breaker):
        def no_election():
            raise NoActiveElection()

        for _ in range(5):
            with pytest.raises(NoActiveElection):
                breaker.call(no_election)

        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0

    def test_manual_reset(self, breaker):
        trip(breaker, 3)
        breaker.reset()

        assert breaker.state == CircuitState.CLOSED
        assert breaker.call(lambda: "ok") == "ok"

    def test_snapshot(self, breaker):
        trip(breaker, 1)
        breaker.call(lambda: None)

        snapshot = breaker.snapshot()
        assert snapshot["state"] == "closed"
        assert snapshot["failure"] == 1
        assert snapshot["success"] == 1
        assert snapshot["total_calls"] == 2
        assert snapshot["failure_threshold"] == 3
