"""
Resilient data access layer.

One ``DataAccessLayer`` is constructed at application startup, owns the cache,
the connection monitor and a small worker pool, and is torn down on shutdown.
Services receive it explicitly; nothing here is a module-level singleton.

Read path (``read_through``):
    fresh cache hit -> query under timeout and circuit breaker -> stale cache
    -> synthesized default

Concurrent misses on one key share a single query. Waiters give up after the
query timeout, and a waiter that finds the previous holder fell back while it
waited falls back too instead of querying again.

Write path (``run``):
    query under timeout; timeouts and connection failures surface as retryable
    ``StorageTimeout`` / ``StorageUnavailable``, never as a silent fallback.
"""

import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from contextlib import contextmanager
from typing import (
    Any,
    Callable,
    Dict,
    Generator,
    NamedTuple,
    Optional,
    Sequence,
    Tuple,
    Type,
    TypeVar,
)

import structlog
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from ballotguard.core.cache import TTLCache
from ballotguard.core.exceptions import StorageError, StorageTimeout, StorageUnavailable
from ballotguard.db.circuit import CircuitBreaker
from ballotguard.db.monitor import ConnectionMonitor

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class CachedRead(NamedTuple):
    """A value read through the cache and where it came from."""

    data: Any
    source: str  # cache, database, stale-cache, default
    stale: bool


def _is_connection_error(exc: BaseException) -> bool:
    if isinstance(exc, (OperationalError, InterfaceError, DisconnectionError)):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


class DataAccessLayer:
    """Bounded, monitored, cached access to the database."""

    def __init__(
        self,
        engine: Engine,
        session_factory: Optional[sessionmaker] = None,
        cache: Optional[TTLCache] = None,
        monitor: Optional[ConnectionMonitor] = None,
        breaker: Optional[CircuitBreaker] = None,
        query_timeout: float = 5.0,
        write_timeout: float = 5.0,
        max_workers: int = 16,
        sweep_interval: float = 300.0,
    ):
        self.engine = engine
        self.session_factory = session_factory or sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=engine
        )
        self.cache = cache or TTLCache()
        self.monitor = monitor or ConnectionMonitor(engine)
        self.breaker = breaker or CircuitBreaker("database-reads")
        self.query_timeout = query_timeout
        self.write_timeout = write_timeout
        self.sweep_interval = sweep_interval
        self._max_workers = max_workers
        self._executor: Optional[ThreadPoolExecutor] = None
        # key -> (monotonic time, error) of the last read that fell back
        self._fallbacks: Dict[str, Tuple[float, StorageError]] = {}

    @classmethod
    def from_settings(cls, engine: Engine, settings) -> "DataAccessLayer":
        """Build the layer from application settings."""
        monitor = ConnectionMonitor(
            engine,
            max_retries=settings.DB_MAX_RECONNECT_ATTEMPTS,
            base_delay=settings.DB_RECONNECT_BASE_DELAY_SECONDS,
            max_delay=settings.DB_RECONNECT_MAX_DELAY_SECONDS,
            slow_query_threshold_ms=settings.DB_SLOW_QUERY_THRESHOLD_MS,
            health_check_interval=settings.DB_HEALTH_CHECK_INTERVAL_SECONDS,
        )
        breaker = CircuitBreaker(
            "database-reads",
            failure_threshold=settings.DB_CIRCUIT_FAILURE_THRESHOLD,
            reset_timeout=settings.DB_CIRCUIT_RESET_TIMEOUT_SECONDS,
            success_threshold=settings.DB_CIRCUIT_SUCCESS_THRESHOLD,
        )
        return cls(
            engine,
            cache=TTLCache(max_size=settings.CACHE_MAX_ENTRIES),
            monitor=monitor,
            breaker=breaker,
            query_timeout=settings.DB_QUERY_TIMEOUT_SECONDS,
            write_timeout=settings.DB_WRITE_TIMEOUT_SECONDS,
            max_workers=settings.DB_WORKER_THREADS,
            sweep_interval=settings.CACHE_SWEEP_INTERVAL_SECONDS,
        )

    # -- lifecycle -------------------------------------------------------

    def start(self, background: bool = True) -> None:
        """Start the worker pool, the connection monitor and the cache sweeper."""
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self._max_workers, thread_name_prefix="db-worker"
            )
        self.monitor.start(run_health_checks=background)
        if background and self.sweep_interval > 0:
            self.cache.start_sweeper(self.sweep_interval)
        logger.info("data_access_started", query_timeout=self.query_timeout)

    def stop(self) -> None:
        self.cache.stop_sweeper()
        self.monitor.stop()
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
        logger.info("data_access_stopped")

    @property
    def started(self) -> bool:
        return self._executor is not None

    # -- sessions and bounded execution ------------------------------------

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        db = self.session_factory()
        try:
            yield db
        finally:
            db.close()

    def _call(self, fn: Callable[[Session], T]) -> T:
        with self.session() as db:
            try:
                return fn(db)
            except Exception as exc:
                if _is_connection_error(exc):
                    db.rollback()
                    self.monitor.record_failure(exc)
                    self.monitor.trigger_reconnect()
                    raise StorageUnavailable() from exc
                raise

    def run(self, fn: Callable[[Session], T], timeout: Optional[float] = None) -> T:
        """Execute ``fn(session)`` on a worker thread, bounded by ``timeout``.

        The session is opened and closed on the worker. Domain errors raised by
        ``fn`` propagate unchanged.

        Raises:
            StorageTimeout: the call did not finish in time
            StorageUnavailable: the database connection failed
        """
        if self._executor is None:
            raise StorageUnavailable("Data access layer is not running")

        timeout = self.query_timeout if timeout is None else timeout
        future = self._executor.submit(self._call, fn)
        try:
            return future.result(timeout=timeout)
        except FuturesTimeout:
            future.cancel()
            logger.warning("db_call_timed_out", timeout_seconds=timeout)
            raise StorageTimeout()

    def write(self, fn: Callable[[Session], T], invalidate: Sequence[str] = ()) -> T:
        """Run a write under the write timeout, then drop the ``invalidate`` cache keys.

        Keys are dropped on failure too: a write that timed out may still
        commit on its worker.
        """
        try:
            return self.run(fn, timeout=self.write_timeout)
        finally:
            self.invalidate(*invalidate)

    # -- cached reads ------------------------------------------------------

    def read_through(
        self,
        key: str,
        loader: Callable[[Session], Any],
        ttl: float,
        default_factory: Optional[Callable[[], Any]] = None,
        fallback_on: Tuple[Type[BaseException], ...] = (),
    ) -> CachedRead:
        """Serve ``key`` from cache, else load it, else fall back.

        Storage failures fall back, as do the exception types in
        ``fallback_on``. Other domain errors raised by ``loader`` (for example
        ``NoActiveElection``) propagate to the caller.
        """
        entry = self.cache.lookup(key)
        if entry is not None:
            return CachedRead(entry.data, "cache", False)

        waiting_since = time.monotonic()
        lock = self.cache.fetch_lock(key)
        if not lock.acquire(timeout=self.query_timeout):
            return self._fallback(key, StorageTimeout(), default_factory)
        try:
            entry = self.cache.peek(key)
            if entry is not None and not self.cache.is_expired(key):
                return CachedRead(self.cache.get(key), "cache", False)

            recent = self._fallbacks.get(key)
            if recent is not None and recent[0] >= waiting_since:
                return self._fallback(key, recent[1], default_factory)

            generation = self.cache.generation(key)
            try:
                data = self.breaker.call(self.run, loader, timeout=self.query_timeout)
            except StorageError as exc:
                self._fallbacks[key] = (time.monotonic(), exc)
                return self._fallback(key, exc, default_factory)
            except fallback_on as exc:
                logger.error("db_read_failed", key=key, error=f"{type(exc).__name__}: {exc}")
                error = StorageUnavailable(f"Could not read {key}")
                self._fallbacks[key] = (time.monotonic(), error)
                return self._fallback(key, error, default_factory)

            self._fallbacks.pop(key, None)
            self.cache.set_if_current(key, data, generation, ttl=ttl, source="database")
            return CachedRead(data, "database", False)
        finally:
            lock.release()

    def _fallback(
        self,
        key: str,
        exc: StorageError,
        default_factory: Optional[Callable[[], Any]],
    ) -> CachedRead:
        entry = self.cache.lookup(key, allow_expired=True)
        if entry is not None:
            entry.stale = True
            logger.warning("cache_stale_fallback", key=key, reason=exc.code)
            return CachedRead(entry.data, "stale-cache", True)

        if default_factory is not None:
            logger.warning("cache_default_fallback", key=key, reason=exc.code)
            return CachedRead(default_factory(), "default", True)

        raise exc

    def invalidate(self, *keys: str) -> None:
        for key in keys:
            self.cache.invalidate(key)

    def reset(self) -> bool:
        """Close the read circuit and re-arm reconnection (admin action)."""
        self.breaker.reset()
        return self.monitor.reset()

    def stats(self) -> dict:
        return {
            "database": self.monitor.snapshot(),
            "circuit": self.breaker.snapshot(),
            "cache": self.cache.get_stats(),
        }
