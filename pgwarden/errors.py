"""Error taxonomy and classification for database connection failures."""

from __future__ import annotations

import socket
import ssl
from dataclasses import dataclass
from enum import Enum

import asyncpg

from .urls import sanitize_text


class PgwardenError(RuntimeError):
    """Base error for pgwarden failures that callers are expected to handle."""


class ConfigurationError(PgwardenError):
    """Raised when database settings cannot be parsed."""


class InvalidDatabaseUrlError(PgwardenError):
    """Carries the validation message for a rejected connection string."""


class SupervisorStateError(PgwardenError):
    """Raised when the supervisor is driven through an impossible transition."""


class ClientNotInitializedError(PgwardenError):
    """Raised when a consumer asks for a client before the supervisor connected."""


class QueryExecutionError(PgwardenError):
    """Raised when a query fails to execute."""


class ErrorCategory(str, Enum):
    """Closed set of connection failure categories."""

    NETWORK = "NETWORK"
    POOL_EXHAUSTED = "POOL_EXHAUSTED"
    DNS = "DNS"
    AUTH_FAILED = "AUTH_FAILED"
    DB_NOT_FOUND = "DB_NOT_FOUND"
    TLS = "TLS"
    SCHEMA = "SCHEMA"
    UNKNOWN = "UNKNOWN"


class Retryability(str, Enum):
    """Whether retrying can plausibly fix the failure."""

    TEMPORARY = "temporary"
    PERMANENT = "permanent"


@dataclass(frozen=True, slots=True)
class ClassifiedError:
    """A driver or network error mapped onto the taxonomy."""

    message: str
    category: ErrorCategory
    retryability: Retryability
    troubleshooting: tuple[str, ...] = ()

    @property
    def retryable(self) -> bool:
        return self.retryability is Retryability.TEMPORARY


AUTH_FAILED_MESSAGE = "Authentication failed. Please check database credentials."

_TROUBLESHOOTING: dict[ErrorCategory, tuple[str, ...]] = {
    ErrorCategory.NETWORK: (
        "Check if the PostgreSQL container is running: docker ps",
        "Verify network connectivity to the database host",
        "Check firewall rules for the database port",
        "Ensure DATABASE_URL host and port are correct",
    ),
    ErrorCategory.POOL_EXHAUSTED: (
        "Increase DB_POOL_SIZE or the server's max_connections",
        "Check for connections that are acquired but never released",
        "Reduce concurrent database operations",
        "Consider an external pooler such as PgBouncer",
    ),
    ErrorCategory.DNS: (
        "Check that the database host name is correct",
        "Verify DNS resolution is working",
        "Try using an IP address instead of the host name",
        "Check /etc/hosts for stale entries",
    ),
    ErrorCategory.AUTH_FAILED: (
        "Verify username and password in DATABASE_URL",
        "Check that the database role exists",
        "Ensure the role is allowed to log in (pg_hba.conf)",
        "Note: credentials are never logged",
    ),
    ErrorCategory.DB_NOT_FOUND: (
        "Check the database name in DATABASE_URL",
        "Create the database if it doesn't exist: createdb <name>",
        "Verify the role has CONNECT privilege on the database",
        "Run database migrations if needed",
    ),
    ErrorCategory.TLS: (
        "Check the sslmode parameter in DATABASE_URL",
        "Add ?sslmode=disable for local development (not for production)",
        "Verify the server certificate chain is valid",
        "Check whether the server requires TLS connections",
    ),
    ErrorCategory.SCHEMA: (
        "Run: alembic upgrade head",
        "Run: alembic current",
        "Generate a missing revision: alembic revision --autogenerate",
        "Verify the database schema matches the application models",
    ),
    ErrorCategory.UNKNOWN: (
        "Check the PostgreSQL server logs for more details",
        "Verify DATABASE_URL is correct",
        "Ensure the database is running and accessible",
        "Check application logs for additional context",
    ),
}

_RETRYABILITY = {
    ErrorCategory.NETWORK: Retryability.TEMPORARY,
    ErrorCategory.POOL_EXHAUSTED: Retryability.TEMPORARY,
    ErrorCategory.DNS: Retryability.TEMPORARY,
    ErrorCategory.AUTH_FAILED: Retryability.PERMANENT,
    ErrorCategory.DB_NOT_FOUND: Retryability.PERMANENT,
    ErrorCategory.TLS: Retryability.PERMANENT,
    ErrorCategory.SCHEMA: Retryability.PERMANENT,
    ErrorCategory.UNKNOWN: Retryability.TEMPORARY,
}

_NETWORK_TYPES: tuple[type[BaseException], ...] = (
    TimeoutError,
    ConnectionRefusedError,
    ConnectionResetError,
    ConnectionAbortedError,
    asyncpg.exceptions.ConnectionDoesNotExistError,
    asyncpg.exceptions.CannotConnectNowError,
)
_NETWORK_MARKERS = (
    "econnrefused",
    "etimedout",
    "enotfound",
    "ehostunreach",
    "enetunreach",
    "connection refused",
    "connect call failed",
    "timed out",
    "connection timeout",
    "no route to host",
    "network is unreachable",
    "terminated unexpectedly",
    "connection was closed",
)
_POOL_TYPES: tuple[type[BaseException], ...] = (asyncpg.exceptions.TooManyConnectionsError,)
_POOL_MARKERS = (
    "connection pool timeout",
    "too many connections",
    "remaining connection slots",
)
_DNS_TYPES: tuple[type[BaseException], ...] = (socket.gaierror,)
_DNS_MARKERS = (
    "getaddrinfo",
    "name or service not known",
    "temporary failure in name resolution",
    "nodename nor servname",
)
_AUTH_TYPES: tuple[type[BaseException], ...] = (
    asyncpg.exceptions.InvalidPasswordError,
    asyncpg.exceptions.InvalidAuthorizationSpecificationError,
)
_AUTH_MARKERS = (
    "28p01",
    "authentication failed",
    "no password supplied",
)
_DB_NOT_FOUND_TYPES: tuple[type[BaseException], ...] = (asyncpg.exceptions.InvalidCatalogNameError,)
_TLS_TYPES: tuple[type[BaseException], ...] = (ssl.SSLError,)
_TLS_MARKERS = ("ssl", "tls", "certificate", "self signed", "self-signed")
_SCHEMA_TYPES: tuple[type[BaseException], ...] = (asyncpg.exceptions.UndefinedTableError,)
_MIGRATION_MARKERS = ("schema", "migration", "revision")


def classify_error(error: BaseException) -> ClassifiedError:
    """Map ``error`` onto the taxonomy; the first matching category wins."""

    message = sanitize_text(str(error)) or type(error).__name__
    text = message.lower()
    category = _categorize(error, text)
    if category is ErrorCategory.AUTH_FAILED:
        message = AUTH_FAILED_MESSAGE
    return ClassifiedError(
        message=message,
        category=category,
        retryability=_RETRYABILITY[category],
        troubleshooting=_TROUBLESHOOTING[category],
    )


def _categorize(error: BaseException, text: str) -> ErrorCategory:
    if isinstance(error, _NETWORK_TYPES) or _contains(text, _NETWORK_MARKERS):
        return ErrorCategory.NETWORK
    if isinstance(error, _POOL_TYPES) or _contains(text, _POOL_MARKERS):
        return ErrorCategory.POOL_EXHAUSTED
    if isinstance(error, _DNS_TYPES) or _contains(text, _DNS_MARKERS):
        return ErrorCategory.DNS
    if isinstance(error, _AUTH_TYPES) or _contains(text, _AUTH_MARKERS):
        return ErrorCategory.AUTH_FAILED
    if isinstance(error, _DB_NOT_FOUND_TYPES) or "3d000" in text:
        return ErrorCategory.DB_NOT_FOUND
    if "database" in text and "does not exist" in text:
        return ErrorCategory.DB_NOT_FOUND
    if isinstance(error, _TLS_TYPES) or _contains(text, _TLS_MARKERS):
        return ErrorCategory.TLS
    if isinstance(error, _SCHEMA_TYPES) or ("relation" in text and "does not exist" in text):
        return ErrorCategory.SCHEMA
    if "alembic" in text and _contains(text, _MIGRATION_MARKERS):
        return ErrorCategory.SCHEMA
    return ErrorCategory.UNKNOWN


def _contains(text: str, markers: tuple[str, ...]) -> bool:
    return any(marker in text for marker in markers)


__all__ = [
    "AUTH_FAILED_MESSAGE",
    "ClassifiedError",
    "ClientNotInitializedError",
    "ConfigurationError",
    "ErrorCategory",
    "InvalidDatabaseUrlError",
    "PgwardenError",
    "QueryExecutionError",
    "Retryability",
    "SupervisorStateError",
    "classify_error",
]
