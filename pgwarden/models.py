"""Shared value types returned by the supervisor."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class SupervisorState(str, Enum):
    """Lifecycle phases of the connection supervisor."""

    UNINITIALIZED = "uninitialized"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECOVERING = "recovering"
    DISCONNECTED = "disconnected"


@dataclass(frozen=True, slots=True)
class ConnectionResult:
    """Outcome of a single initialize/reconnect attempt sequence."""

    success: bool
    message: str
    attempt_count: int = 0
    error: BaseException | None = None


@dataclass(frozen=True, slots=True)
class ConnectionStatus:
    """Point-in-time view of the supervised connection; credentials already masked."""

    connected: bool
    state: SupervisorState
    retry_count: int
    database_url: str
    last_connected_at: datetime | None = None
    last_error: str | None = None
    recovering: bool = False

    def as_dict(self) -> dict[str, object]:
        return {
            "connected": self.connected,
            "state": self.state.value,
            "retryCount": self.retry_count,
            "databaseUrl": self.database_url,
            "lastConnectedAt": self.last_connected_at.isoformat() if self.last_connected_at else None,
            "lastError": self.last_error,
            "recovering": self.recovering,
        }


__all__ = ["ConnectionResult", "ConnectionStatus", "SupervisorState"]
