"""
Database connection monitoring and reconnection.

Hooks SQLAlchemy engine events to time every statement, flag slow queries and
notice connection-level failures. When the connection drops, a single
background thread retries through ``tenacity`` with exponential backoff and
jitter, waiting before every attempt:

    delay = min(base * 2**attempt * uniform(0.8, 1.2), cap)

Concurrent triggers while a sequence is running are coalesced. After
``max_retries`` failed attempts the monitor stops retrying, logs at error level
and calls ``on_exhausted``; ``reset()`` (admin action) re-arms it.
"""

import random
import threading
import time
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Deque, Dict, Optional

import structlog
from sqlalchemy import event, text
from sqlalchemy.engine import Engine
from tenacity import (
    RetryError,
    Retrying,
    retry_if_result,
    stop_after_attempt,
    stop_when_event_set,
)

logger = structlog.get_logger(__name__)


class ReconnectCancelled(Exception):
    """The monitor was stopped while a reconnect sequence was waiting."""


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"
    UNKNOWN = "unknown"


class ConnectionMonitor:
    """Tracks connection health for one engine and drives reconnection."""

    def __init__(
        self,
        engine: Engine,
        max_retries: int = 5,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        slow_query_threshold_ms: float = 1000.0,
        health_check_interval: float = 60.0,
        stale_after_seconds: float = 120.0,
        on_exhausted: Optional[Callable[["ConnectionMonitor"], None]] = None,
        rng: Callable[[], float] = random.random,
        max_entries: int = 100,
    ):
        self.engine = engine
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.slow_query_threshold_ms = slow_query_threshold_ms
        self.health_check_interval = health_check_interval
        self.stale_after_seconds = stale_after_seconds
        self.on_exhausted = on_exhausted
        self._rng = rng

        self.state = ConnectionState.UNKNOWN
        self.connection_issues = 0
        self.slow_query_count = 0
        self.attempts = 0
        self.exhausted = False
        self.last_check: Optional[datetime] = None
        self.last_successful_query: Optional[float] = None
        self.last_reconnect_attempt: Optional[datetime] = None
        self.last_error: Optional[str] = None

        self._recent: Deque[Dict[str, Any]] = deque(maxlen=max_entries)
        self._slow: Deque[Dict[str, Any]] = deque(maxlen=max_entries)
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._reconnect_thread: Optional[threading.Thread] = None
        self._health_thread: Optional[threading.Thread] = None
        self._installed = False

    # -- lifecycle -------------------------------------------------------

    def install(self) -> None:
        """Attach engine event listeners (idempotent)."""
        if self._installed:
            return
        event.listen(self.engine, "before_cursor_execute", self._before_cursor_execute)
        event.listen(self.engine, "after_cursor_execute", self._after_cursor_execute)
        event.listen(self.engine, "handle_error", self._handle_error)
        self._installed = True

    def uninstall(self) -> None:
        if not self._installed:
            return
        event.remove(self.engine, "before_cursor_execute", self._before_cursor_execute)
        event.remove(self.engine, "after_cursor_execute", self._after_cursor_execute)
        event.remove(self.engine, "handle_error", self._handle_error)
        self._installed = False

    def start(self, run_health_checks: bool = True) -> None:
        """Install listeners, check the connection and start periodic checks."""
        self._stop.clear()
        self.install()
        self.state = ConnectionState.CONNECTING
        if not self.ping():
            self.trigger_reconnect()

        if run_health_checks and self.health_check_interval > 0:
            self._health_thread = threading.Thread(
                target=self._health_loop, name="db-health-check", daemon=True
            )
            self._health_thread.start()

    def stop(self) -> None:
        self.state = ConnectionState.DISCONNECTING
        self._stop.set()
        for thread in (self._reconnect_thread, self._health_thread):
            if thread is not None and thread is not threading.current_thread():
                thread.join(timeout=1.0)
        self.uninstall()
        self.state = ConnectionState.DISCONNECTED
        logger.info("db_monitor_stopped")

    # -- event hooks -----------------------------------------------------

    def _before_cursor_execute(self, conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault("query_start_time", []).append(time.perf_counter())

    def _after_cursor_execute(self, conn, cursor, statement, parameters, context, executemany):
        starts = conn.info.get("query_start_time")
        if not starts:
            return
        duration_ms = (time.perf_counter() - starts.pop()) * 1000
        self.record_query(statement, duration_ms)

    def _handle_error(self, exception_context) -> None:
        if exception_context.is_disconnect:
            self.record_failure(exception_context.original_exception)
            self.trigger_reconnect()

    # -- recording -------------------------------------------------------

    def record_query(self, statement: str, duration_ms: float) -> None:
        """Record a statement timing; flags it when over the slow threshold."""
        info = {
            "statement": statement.strip().split("\n", 1)[0][:120],
            "duration_ms": round(duration_ms, 2),
            "at": datetime.now(timezone.utc).isoformat(),
        }
        with self._lock:
            self._recent.appendleft(info)
            if duration_ms > self.slow_query_threshold_ms:
                self._slow.appendleft(info)
                self.slow_query_count += 1
                slow = True
            else:
                slow = False
        if slow:
            logger.warning("db_slow_query", **info)
        self.record_success()

    def record_success(self) -> None:
        with self._lock:
            self.last_successful_query = time.time()
            if self.state in (ConnectionState.UNKNOWN, ConnectionState.CONNECTING, ConnectionState.DISCONNECTED):
                self.state = ConnectionState.CONNECTED

    def record_failure(self, exc: BaseException) -> None:
        with self._lock:
            self.connection_issues += 1
            self.last_error = f"{type(exc).__name__}: {exc}"
            if self.state != ConnectionState.DISCONNECTING:
                self.state = ConnectionState.DISCONNECTED
        logger.error("db_connection_error", error=self.last_error, issues=self.connection_issues)

    # -- probing and reconnection ------------------------------------------

    def ping(self) -> bool:
        """Run ``SELECT 1``. Returns False (and records the failure) on error."""
        self.last_check = datetime.now(timezone.utc)
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as exc:
            self.record_failure(exc)
            return False
        self.record_success()
        return True

    def backoff_delay(self, attempt: int) -> float:
        """Delay before ``attempt`` (1-based): doubling, jittered ±20%, capped."""
        jitter = 0.8 + self._rng() * 0.4
        return min(self.base_delay * (2 ** attempt) * jitter, self.max_delay)

    def _wait(self, retry_state) -> float:
        return self.backoff_delay(retry_state.attempt_number + 1)

    def _sleep(self, seconds: float) -> None:
        if self._stop.wait(seconds):
            raise ReconnectCancelled()

    def _log_scheduled(self, attempt: int, delay: float) -> None:
        logger.info(
            "db_reconnect_scheduled",
            attempt=attempt,
            max_attempts=self.max_retries,
            delay_seconds=round(delay, 2),
        )

    def _before_sleep(self, retry_state) -> None:
        self._log_scheduled(retry_state.attempt_number + 1, retry_state.next_action.sleep)

    @property
    def reconnect_pending(self) -> bool:
        thread = self._reconnect_thread
        return thread is not None and thread.is_alive()

    def trigger_reconnect(self) -> bool:
        """Start a background reconnect sequence.

        Returns False when one is already running or retries are exhausted.
        """
        with self._lock:
            if self._stop.is_set():
                return False
            if self.reconnect_pending:
                return False
            if self.exhausted:
                logger.warning("db_reconnect_suppressed", reason="max_attempts_reached")
                return False
            self._reconnect_thread = threading.Thread(
                target=self._reconnect_loop, name="db-reconnect", daemon=True
            )
            self._reconnect_thread.start()
            return True

    def _attempt_reconnect(self) -> bool:
        with self._lock:
            self.attempts += 1
            attempt = self.attempts
            self.state = ConnectionState.CONNECTING
            self.last_reconnect_attempt = datetime.now(timezone.utc)

        self.engine.dispose()
        if self.ping():
            logger.info("db_reconnected", attempt=attempt)
            return True
        logger.warning("db_reconnect_failed", attempt=attempt)
        return False

    def _reconnect_loop(self) -> None:
        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries) | stop_when_event_set(self._stop),
            wait=self._wait,
            retry=retry_if_result(lambda connected: not connected),
            sleep=self._sleep,
            before_sleep=self._before_sleep,
        )
        try:
            first_delay = self.backoff_delay(1)
            self._log_scheduled(1, first_delay)
            self._sleep(first_delay)
            retrying(self._attempt_reconnect)
        except ReconnectCancelled:
            return
        except RetryError:
            if self._stop.is_set():
                return
            with self._lock:
                self.exhausted = True
            logger.error(
                "db_reconnect_exhausted",
                attempts=self.attempts,
                detail="Maximum reconnection attempts reached. Manual intervention required.",
            )
            if self.on_exhausted is not None:
                self.on_exhausted(self)
            return

        with self._lock:
            self.attempts = 0
            self.state = ConnectionState.CONNECTED

    def reset(self) -> bool:
        """Re-arm retries after exhaustion and reconnect if not connected."""
        with self._lock:
            self.attempts = 0
            self.exhausted = False
        logger.info("db_reconnect_reset")
        if self.state != ConnectionState.CONNECTED:
            return self.trigger_reconnect()
        return False

    def check_health(self) -> str:
        """Ping the database and detect a connection that silently went stale."""
        ok = self.ping()
        if not ok:
            self.trigger_reconnect()
        elif self.last_successful_query is not None:
            idle = time.time() - self.last_successful_query
            if idle > self.stale_after_seconds:
                logger.warning("db_connection_stale", idle_seconds=round(idle))
                self.trigger_reconnect()
        status = self.health_status()
        logger.debug("db_health_check", status=status, state=self.state.value)
        return status

    def _health_loop(self) -> None:
        while not self._stop.wait(self.health_check_interval):
            try:
                self.check_health()
            except Exception:
                logger.exception("db_health_check_failed")

    # -- reporting -------------------------------------------------------

    def health_status(self) -> str:
        if self.state == ConnectionState.CONNECTED:
            return "degraded" if self.reconnect_pending else "healthy"
        if self.state == ConnectionState.CONNECTING:
            return "connecting"
        if self.state == ConnectionState.UNKNOWN:
            return "unknown"
        return "critical"

    def snapshot(self) -> Dict[str, Any]:
        """Current health for the admin diagnostics endpoint."""
        with self._lock:
            recent = list(self._recent)
            slow = list(self._slow)
            attempts = self.attempts
            exhausted = self.exhausted

        average = round(sum(q["duration_ms"] for q in recent) / len(recent), 2) if recent else 0
        if exhausted:
            reconnect_status = "maxed"
        elif self.reconnect_pending:
            reconnect_status = "pending"
        else:
            reconnect_status = "none"

        return {
            "status": self.health_status(),
            "state": self.state.value,
            "last_check": self.last_check.isoformat() if self.last_check else None,
            "last_successful_query": (
                datetime.fromtimestamp(self.last_successful_query, timezone.utc).isoformat()
                if self.last_successful_query else None
            ),
            "last_error": self.last_error,
            "connection_issues": self.connection_issues,
            "slow_queries": self.slow_query_count,
            "average_query_ms": average,
            "recent_queries": recent[:5],
            "slowest_recent": slow[:5],
            "reconnect_status": reconnect_status,
            "reconnect_attempt": attempts,
            "max_reconnect_attempts": self.max_retries,
            "last_reconnect_attempt": (
                self.last_reconnect_attempt.isoformat() if self.last_reconnect_attempt else None
            ),
        }
