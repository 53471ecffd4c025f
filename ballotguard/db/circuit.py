"""
Circuit breaker around database reads.

    closed    -> calls pass; consecutive storage failures are counted
    open      -> calls fail fast with ``CircuitOpen`` until ``reset_timeout``
    half_open -> calls pass as trials; ``success_threshold`` successes close
                 the circuit, one failure opens it again

Only storage failures (``StorageError``) count. Domain errors mean the
database answered and leave the state alone.
"""

import threading
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional, TypeVar

import structlog

from ballotguard.core.exceptions import CircuitOpen, StorageError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Stops hammering a failing database and lets callers fall back at once."""

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        reset_timeout: float = 30.0,
        success_threshold: int = 2,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.success_threshold = success_threshold
        self._clock = clock

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.opened_at: Optional[float] = None
        self.last_tripped: Optional[datetime] = None
        self.counters = {"success": 0, "failure": 0, "rejected": 0, "total_calls": 0}
        self._lock = threading.Lock()

    def call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run ``fn`` unless the circuit is open.

        Raises:
            CircuitOpen: the circuit is open and the reset timeout has not passed
        """
        self._before_call()
        try:
            result = fn(*args, **kwargs)
        except StorageError:
            self.record_failure()
            raise
        self.record_success()
        return result

    def _before_call(self) -> None:
        with self._lock:
            self.counters["total_calls"] += 1
            if self.state != CircuitState.OPEN:
                return
            if self._clock() - self.opened_at >= self.reset_timeout:
                self.success_count = 0
                self._transition(CircuitState.HALF_OPEN)
                return
            self.counters["rejected"] += 1
        raise CircuitOpen()

    def record_success(self) -> None:
        with self._lock:
            self.counters["success"] += 1
            if self.state == CircuitState.HALF_OPEN:
                self.success_count += 1
                if self.success_count >= self.success_threshold:
                    self.failure_count = 0
                    self._transition(CircuitState.CLOSED)
            else:
                self.failure_count = 0

    def record_failure(self) -> None:
        with self._lock:
            self.counters["failure"] += 1
            self.failure_count += 1
            if self.state == CircuitState.HALF_OPEN or self.failure_count >= self.failure_threshold:
                self._trip()

    def reset(self) -> None:
        """Close the circuit by hand (admin reconnect)."""
        with self._lock:
            self.failure_count = 0
            self.success_count = 0
            if self.state != CircuitState.CLOSED:
                self._transition(CircuitState.CLOSED)

    def _trip(self) -> None:
        self.opened_at = self._clock()
        self.last_tripped = datetime.now(timezone.utc)
        self.success_count = 0
        if self.state != CircuitState.OPEN:
            self._transition(CircuitState.OPEN)

    def _transition(self, state: CircuitState) -> None:
        previous, self.state = self.state, state
        log = logger.info if state == CircuitState.CLOSED else logger.warning
        log(
            "circuit_state_change",
            circuit=self.name,
            previous=previous.value,
            state=state.value,
            failures=self.failure_count,
        )

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "name": self.name,
                "state": self.state.value,
                "failure_count": self.failure_count,
                "failure_threshold": self.failure_threshold,
                "reset_timeout_seconds": self.reset_timeout,
                "last_tripped": self.last_tripped.isoformat() if self.last_tripped else None,
                **self.counters,
            }
