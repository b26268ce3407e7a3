"""Database health reporting for liveness endpoints."""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field

from .errors import classify_error
from .supervisor import ConnectionSupervisor

PROBE_TIMEOUT = 5.0

HealthState = Literal["healthy", "degraded", "unhealthy"]


class DatabaseHealth(BaseModel):
    """Result of an ad-hoc database probe."""

    connected: bool
    response_time_ms: int | None = None
    error: str | None = None
    last_connected_at: datetime | None = None


class SystemHealth(BaseModel):
    """Body served by the health endpoint."""

    status: HealthState
    database: DatabaseHealth
    timestamp: datetime = Field(default_factory=lambda: datetime.now(tz=timezone.utc))

    @property
    def http_status(self) -> int:
        return 200 if self.database.connected else 503

    def to_body(self) -> dict[str, object]:
        return self.model_dump(mode="json", exclude_none=True)


class HealthReporter:
    """Probes the supervised connection and reports current latency."""

    def __init__(self, supervisor: ConnectionSupervisor, *, probe_timeout: float = PROBE_TIMEOUT) -> None:
        self._supervisor = supervisor
        self._probe_timeout = probe_timeout

    async def check_database(self) -> DatabaseHealth:
        """Run a round-trip probe instead of trusting the cached status."""

        status = self._supervisor.get_status()
        client = self._supervisor.get_client()
        if client is None:
            return DatabaseHealth(
                connected=False,
                error=status.last_error or "Database client not initialized",
                last_connected_at=status.last_connected_at,
            )
        started = time.perf_counter()
        try:
            await asyncio.wait_for(client.ping(), timeout=self._probe_timeout)
        except Exception as exc:
            self._supervisor.report_connection_lost(exc)
            return DatabaseHealth(
                connected=False,
                error=classify_error(exc).message,
                last_connected_at=status.last_connected_at,
            )
        response_time_ms = int((time.perf_counter() - started) * 1000)
        if not self._supervisor.is_connected():
            # The database answered while recovery is pending; reconnect now.
            result = await self._supervisor.reconnect()
            if not result.success:
                return DatabaseHealth(
                    connected=False,
                    error=classify_error(result.error).message if result.error else result.message,
                    last_connected_at=self._supervisor.get_status().last_connected_at,
                )
        return DatabaseHealth(
            connected=True,
            response_time_ms=response_time_ms,
            last_connected_at=self._supervisor.get_status().last_connected_at,
        )

    async def check(self) -> SystemHealth:
        database = await self.check_database()
        if database.connected:
            state: HealthState = "healthy"
        elif self._supervisor.recovering:
            state = "degraded"
        else:
            state = "unhealthy"
        return SystemHealth(status=state, database=database)


__all__ = ["DatabaseHealth", "HealthReporter", "HealthState", "SystemHealth"]
