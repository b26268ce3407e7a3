"""Supervised PostgreSQL connection lifecycle for asyncio services."""

from __future__ import annotations

from .client import QueryClient, QueryResult
from .config import ConnectionConfig, load_config
from .errors import ClassifiedError, ErrorCategory, Retryability, classify_error
from .health import DatabaseHealth, HealthReporter, SystemHealth
from .models import ConnectionResult, ConnectionStatus, SupervisorState
from .repository import BaseRepository
from .supervisor import ConnectionSupervisor, get_supervisor
from .threaded import ThreadedSupervisor
from .urls import ValidationResult, sanitize_url, validate_database_url

__version__ = "0.1.0"

__all__ = [
    "BaseRepository",
    "ClassifiedError",
    "ConnectionConfig",
    "ConnectionResult",
    "ConnectionStatus",
    "ConnectionSupervisor",
    "DatabaseHealth",
    "ErrorCategory",
    "HealthReporter",
    "QueryClient",
    "QueryResult",
    "Retryability",
    "SupervisorState",
    "SystemHealth",
    "ThreadedSupervisor",
    "ValidationResult",
    "__version__",
    "classify_error",
    "get_supervisor",
    "load_config",
    "sanitize_url",
    "validate_database_url",
]
