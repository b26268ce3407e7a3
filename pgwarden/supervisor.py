"""Connection supervisor owning the pooled PostgreSQL connection."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache

import asyncpg

from .client import PROBE_QUERY, QueryClient
from .config import ConnectionConfig, load_config
from .errors import (
    ConfigurationError,
    InvalidDatabaseUrlError,
    PgwardenError,
    SupervisorStateError,
    classify_error,
)
from .models import ConnectionResult, ConnectionStatus, SupervisorState
from .urls import sanitize_text, validate_database_url

LOG = logging.getLogger(__name__)

RECONNECT_MAX_RETRIES = 3
RECONNECT_BASE_DELAY = 2.0
RECOVERY_INTERVAL = 30.0
DISCONNECT_TIMEOUT = 5.0
POOL_IDLE_LIFETIME = 10.0

Sleep = Callable[[float], Awaitable[None]]
Probe = Callable[[], Awaitable[object]]
PoolFactory = Callable[[ConnectionConfig], Awaitable[asyncpg.Pool]]
StatusListener = Callable[[ConnectionStatus], None]


def backoff_delay(attempt: int, base_delay: float) -> float:
    """Seconds to wait before ``attempt`` (1-based): nothing before the first, then doubling."""

    if attempt < 2:
        return 0.0
    return base_delay * 2 ** (attempt - 2)


async def retry_with_backoff(
    probe: Probe,
    *,
    max_retries: int,
    base_delay: float,
    database_url: str = "",
    sleep: Sleep = asyncio.sleep,
) -> ConnectionResult:
    """Run ``probe`` until it succeeds or ``max_retries`` attempts are spent.

    Every failure is classified and logged with the attempt number, the
    remaining budget, the sanitized URL, and the troubleshooting steps.
    Permanent failures still consume the whole budget; the log marks them so
    operators know waiting will not help.
    """

    if max_retries < 1:
        raise ValueError("max_retries must be at least 1")
    last_error: BaseException | None = None
    for attempt in range(1, max_retries + 1):
        delay = backoff_delay(attempt, base_delay)
        if delay:
            LOG.info(
                "Waiting %.2fs before connection attempt %d/%d",
                delay,
                attempt,
                max_retries,
                extra={"attempt": attempt, "delay_s": delay, "database_url": database_url},
            )
            await sleep(delay)
        LOG.info(
            "Attempting database connection %d/%d to %s",
            attempt,
            max_retries,
            database_url,
            extra={"attempt": attempt, "remaining_retries": max_retries - attempt, "database_url": database_url},
        )
        try:
            await probe()
        except Exception as exc:
            last_error = exc
            classified = classify_error(exc)
            LOG.error(
                "Database connection attempt %d/%d to %s failed [%s, %s]: %s",
                attempt,
                max_retries,
                database_url,
                classified.category.value,
                classified.retryability.value,
                classified.message,
                extra={
                    "attempt": attempt,
                    "remaining_retries": max_retries - attempt,
                    "database_url": database_url,
                    "category": classified.category.value,
                    "retryability": classified.retryability.value,
                    "troubleshooting": list(classified.troubleshooting),
                },
            )
            LOG.info("Troubleshooting: %s", "; ".join(classified.troubleshooting))
            continue
        LOG.info("Database connection successful on attempt %d", attempt, extra={"attempt": attempt})
        return ConnectionResult(
            success=True,
            message=f"Connected successfully on attempt {attempt}",
            attempt_count=attempt,
        )

    LOG.error(
        "All %d connection attempts to %s exhausted",
        max_retries,
        database_url,
        extra={"total_attempts": max_retries, "database_url": database_url},
    )
    return ConnectionResult(
        success=False,
        message=f"Failed to connect after {max_retries} attempts",
        attempt_count=max_retries,
        error=last_error,
    )


async def create_asyncpg_pool(config: ConnectionConfig) -> asyncpg.Pool:
    """Build the pool without opening connections; the first probe does the I/O."""

    return await asyncpg.create_pool(
        dsn=config.url,
        min_size=0,
        max_size=config.pool_size,
        max_inactive_connection_lifetime=POOL_IDLE_LIFETIME,
        timeout=config.connection_timeout,
    )


@dataclass(slots=True)
class ConnectionState:
    """Mutable state owned by a single supervisor."""

    pool: asyncpg.Pool | None = None
    client: QueryClient | None = None
    connected: bool = False
    last_connected_at: datetime | None = None
    last_error: BaseException | None = None
    retry_count: int = 0
    recovery_task: asyncio.Task[None] | None = None
    phase: SupervisorState = SupervisorState.UNINITIALIZED


class ConnectionSupervisor:
    """Owns the pool, drives retries, and recovers the connection in the background.

    State transitions (initialize, reconnect, disconnect, recovery ticks) are
    serialized by one lock; the accessors never block. Expected failures come
    back as ``ConnectionResult`` values instead of exceptions.
    """

    def __init__(
        self,
        config: ConnectionConfig | None = None,
        *,
        pool_factory: PoolFactory | None = None,
        sleep: Sleep | None = None,
        reconnect_max_retries: int = RECONNECT_MAX_RETRIES,
        reconnect_base_delay: float = RECONNECT_BASE_DELAY,
        recovery_interval: float = RECOVERY_INTERVAL,
        disconnect_timeout: float = DISCONNECT_TIMEOUT,
    ) -> None:
        self._config = config
        self._pool_factory = pool_factory or create_asyncpg_pool
        self._sleep = sleep or asyncio.sleep
        self._reconnect_max_retries = reconnect_max_retries
        self._reconnect_base_delay = reconnect_base_delay
        self._recovery_interval = recovery_interval
        self._disconnect_timeout = disconnect_timeout
        self._state = ConnectionState()
        self._lock = asyncio.Lock()
        self._listeners: set[StatusListener] = set()
        self._generation = 0

    @property
    def config(self) -> ConnectionConfig | None:
        """Configuration captured by the first initialize (or injected)."""

        return self._config

    @property
    def state(self) -> SupervisorState:
        return self._state.phase

    @property
    def recovering(self) -> bool:
        """Whether the background recovery loop is scheduled."""

        return self._state.recovery_task is not None

    async def initialize(self) -> ConnectionResult:
        """Validate settings, build (or reuse) the pool, and connect with backoff."""

        async with self._lock:
            try:
                config = self._ensure_config()
            except ConfigurationError as exc:
                return self._reject(exc)
            validation = validate_database_url(config.url)
            if not validation.valid:
                return self._reject(InvalidDatabaseUrlError(validation.error))
            self._set_phase(SupervisorState.CONNECTING)
            if self._state.pool is None:
                failure = await self._open_pool(config)
                if failure is not None:
                    return failure
            else:
                LOG.debug("Reusing existing database pool for %s", config.sanitized_url)
            return await self._connect(config.max_retries, config.retry_base_delay)

    async def reconnect(self) -> ConnectionResult:
        """Re-establish the connection with a smaller retry budget than initialize."""

        if self._state.phase is SupervisorState.UNINITIALIZED:
            raise SupervisorStateError("Supervisor has not been initialized; call initialize() first.")
        LOG.info("Attempting database reconnection")
        async with self._lock:
            if self._state.connected and self._state.pool is not None:
                return ConnectionResult(success=True, message="Already connected")
            try:
                config = self._ensure_config()
            except ConfigurationError as exc:
                return self._reject(exc)
            if self._state.phase is SupervisorState.DISCONNECTED:
                self._set_phase(SupervisorState.CONNECTING)
            if self._state.pool is None:
                validation = validate_database_url(config.url)
                if not validation.valid:
                    return self._reject(InvalidDatabaseUrlError(validation.error))
                failure = await self._open_pool(config)
                if failure is not None:
                    return failure
            result = await self._connect(self._reconnect_max_retries, self._reconnect_base_delay)
        if result.success:
            LOG.info("Database reconnection successful")
        return result

    async def disconnect(self) -> None:
        """Stop recovery and close the pool, never waiting past the disconnect timeout."""

        # In-flight transitions compare against this and discard their outcome.
        self._generation += 1
        task = self._stop_recovery()
        if task is not None and task is not asyncio.current_task():
            await asyncio.wait({task}, timeout=self._disconnect_timeout)
        acquired = await self._acquire_for_shutdown()
        try:
            await self._close_pool()
        finally:
            if acquired:
                self._lock.release()

    def get_client(self) -> QueryClient | None:
        return self._state.client

    def is_connected(self) -> bool:
        return self._state.connected

    def get_status(self) -> ConnectionStatus:
        state = self._state
        return ConnectionStatus(
            connected=state.connected,
            state=state.phase,
            retry_count=state.retry_count,
            database_url=self._config.sanitized_url if self._config else "",
            last_connected_at=state.last_connected_at,
            last_error=_describe_error(state.last_error),
            recovering=state.recovery_task is not None,
        )

    def report_connection_lost(self, error: BaseException) -> None:
        """Record that a collaborator saw the database go away after startup."""

        state = self._state
        if not state.connected:
            return
        classified = classify_error(error)
        LOG.warning(
            "Database connection lost [%s]: %s",
            classified.category.value,
            classified.message,
            extra={"category": classified.category.value},
        )
        state.connected = False
        state.last_error = error
        state.phase = SupervisorState.RECOVERING
        self._start_recovery()
        self._notify()

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Subscribe to status changes; returns an unsubscribe handle."""

        self._listeners.add(listener)

        def _unsubscribe() -> None:
            self._listeners.discard(listener)

        return _unsubscribe

    def _ensure_config(self) -> ConnectionConfig:
        if self._config is None:
            self._config = load_config()
        return self._config

    async def _open_pool(self, config: ConnectionConfig) -> ConnectionResult | None:
        generation = self._generation
        try:
            pool = await self._pool_factory(config)
        except Exception as exc:
            if generation != self._generation:
                return _interrupted(error=exc)
            classified = classify_error(exc)
            LOG.error(
                "Failed to create database pool for %s: %s",
                config.sanitized_url,
                classified.message,
                extra={"database_url": config.sanitized_url, "category": classified.category.value},
            )
            result = ConnectionResult(
                success=False,
                message=f"Failed to create database pool: {classified.message}",
                error=exc,
            )
            self._record(result)
            return result
        if generation != self._generation:
            LOG.warning("Disconnect requested while the database pool was being created; closing it")
            await self._release_pool(pool)
            return _interrupted()
        self._state.pool = pool
        self._state.client = None
        LOG.info("Created database pool (max_size=%d) for %s", config.pool_size, config.sanitized_url)
        return None

    async def _connect(self, max_retries: int, base_delay: float) -> ConnectionResult:
        pool = self._state.pool
        config = self._config
        if pool is None or config is None:
            raise SupervisorStateError("Database pool not initialized")
        timeout = config.connection_timeout
        generation = self._generation

        async def _probe() -> None:
            await pool.fetchval(PROBE_QUERY, timeout=timeout)

        result = await retry_with_backoff(
            _probe,
            max_retries=max_retries,
            base_delay=base_delay,
            database_url=config.sanitized_url,
            sleep=self._sleep,
        )
        if self._state.pool is not pool or generation != self._generation:
            LOG.warning("Database pool was released during the connection attempt; discarding result")
            return _interrupted(attempt_count=result.attempt_count, error=result.error)
        self._record(result)
        return result

    def _record(self, result: ConnectionResult) -> None:
        state = self._state
        state.retry_count = result.attempt_count
        if result.success and state.pool is not None:
            if state.client is None:
                state.client = QueryClient(state.pool)
            state.connected = True
            state.last_connected_at = datetime.now(tz=timezone.utc)
            state.last_error = None
            state.phase = SupervisorState.CONNECTED
            self._stop_recovery()
        else:
            state.connected = False
            state.last_error = result.error
            state.phase = SupervisorState.RECOVERING
            self._start_recovery()
        self._notify()

    def _reject(self, error: PgwardenError) -> ConnectionResult:
        LOG.error("Database configuration rejected: %s", error)
        state = self._state
        state.connected = False
        state.last_error = error
        state.phase = SupervisorState.DISCONNECTED
        self._notify()
        return ConnectionResult(success=False, message=str(error), error=error)

    def _set_phase(self, phase: SupervisorState) -> None:
        if self._state.phase is phase:
            return
        self._state.phase = phase
        self._notify()

    def _start_recovery(self) -> None:
        if self._state.recovery_task is not None:
            return
        LOG.info("Starting background recovery loop (every %.1fs)", self._recovery_interval)
        loop = asyncio.get_running_loop()
        self._state.recovery_task = loop.create_task(self._recovery_loop(), name="pgwarden-recovery")

    def _stop_recovery(self) -> asyncio.Task[None] | None:
        task, self._state.recovery_task = self._state.recovery_task, None
        if task is None:
            return None
        if task is not asyncio.current_task():
            task.cancel()
        LOG.info("Background recovery loop stopped")
        return task

    async def _recovery_loop(self) -> None:
        current = asyncio.current_task()
        while self._state.recovery_task is current:
            await asyncio.sleep(self._recovery_interval)
            if self._state.recovery_task is not current:
                return
            if self.is_connected():
                self._stop_recovery()
                return
            try:
                await self.reconnect()
            except Exception:
                LOG.exception("Background reconnection attempt failed")

    async def _acquire_for_shutdown(self) -> bool:
        try:
            await asyncio.wait_for(self._lock.acquire(), timeout=self._disconnect_timeout)
        except asyncio.TimeoutError:
            LOG.warning(
                "Connection attempt still running after %.1fs; disconnecting without waiting for it",
                self._disconnect_timeout,
            )
            return False
        return True

    async def _close_pool(self) -> None:
        state = self._state
        pool = state.pool
        if pool is None:
            LOG.info("No database connection to disconnect")
            if state.phase is not SupervisorState.UNINITIALIZED:
                state.connected = False
                self._set_phase(SupervisorState.DISCONNECTED)
            return
        LOG.info("Initiating graceful database disconnect (timeout %.1fs)", self._disconnect_timeout)
        try:
            await self._release_pool(pool)
        finally:
            state.pool = None
            state.client = None
            state.connected = False
            state.phase = SupervisorState.DISCONNECTED
            self._notify()

    async def _release_pool(self, pool: asyncpg.Pool) -> None:
        try:
            await asyncio.wait_for(pool.close(), timeout=self._disconnect_timeout)
        except asyncio.TimeoutError:
            LOG.warning(
                "Disconnect timeout reached after %.1fs, terminating pool",
                self._disconnect_timeout,
            )
            pool.terminate()
        except Exception as exc:
            LOG.error("Error during database disconnect: %s", sanitize_text(str(exc)))
        else:
            LOG.info("Database disconnected")

    def _notify(self) -> None:
        if not self._listeners:
            return
        status = self.get_status()
        for listener in tuple(self._listeners):
            try:
                listener(status)
            except Exception:
                LOG.exception("Status listener failed")


def _interrupted(*, attempt_count: int = 0, error: BaseException | None = None) -> ConnectionResult:
    return ConnectionResult(
        success=False,
        message="Disconnected during connection attempt",
        attempt_count=attempt_count,
        error=error,
    )


def _describe_error(error: BaseException | None) -> str | None:
    if error is None:
        return None
    if isinstance(error, PgwardenError):
        # Validator and settings messages carry no credentials.
        return str(error)
    return classify_error(error).message


@lru_cache(maxsize=1)
def get_supervisor() -> ConnectionSupervisor:
    """Process-wide supervisor; its configuration is read on the first initialize()."""

    return ConnectionSupervisor()


__all__ = [
    "ConnectionState",
    "ConnectionSupervisor",
    "DISCONNECT_TIMEOUT",
    "RECONNECT_BASE_DELAY",
    "RECONNECT_MAX_RETRIES",
    "RECOVERY_INTERVAL",
    "backoff_delay",
    "create_asyncpg_pool",
    "get_supervisor",
    "retry_with_backoff",
]
