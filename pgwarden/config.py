"""Database settings loading helpers."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError
from .urls import sanitize_url

DEFAULT_POOL_SIZE = 10
DEFAULT_CONNECTION_TIMEOUT_MS = 10_000
DEFAULT_MAX_RETRIES = 5
DEFAULT_RETRY_BASE_DELAY_MS = 1_000


class ConnectionConfig(BaseModel):
    """Immutable connection settings captured when the supervisor initializes."""

    model_config = ConfigDict(frozen=True)

    database_url: SecretStr = SecretStr("")
    pool_size: int = Field(default=DEFAULT_POOL_SIZE, ge=1)
    connection_timeout_ms: int = Field(default=DEFAULT_CONNECTION_TIMEOUT_MS, ge=1)
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=1)
    retry_base_delay_ms: int = Field(default=DEFAULT_RETRY_BASE_DELAY_MS, ge=0)

    @property
    def url(self) -> str:
        """Raw connection string; hand it to the driver only."""

        return self.database_url.get_secret_value()

    @property
    def sanitized_url(self) -> str:
        return sanitize_url(self.url)

    @property
    def connection_timeout(self) -> float:
        return self.connection_timeout_ms / 1000

    @property
    def retry_base_delay(self) -> float:
        return self.retry_base_delay_ms / 1000


class DatabaseSettings(BaseSettings):
    """Environment (or ``.env``) view of the database settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: SecretStr = Field(default=SecretStr(""), alias="DATABASE_URL")
    pool_size: int = Field(default=DEFAULT_POOL_SIZE, ge=1, alias="DB_POOL_SIZE")
    connection_timeout_ms: int = Field(
        default=DEFAULT_CONNECTION_TIMEOUT_MS, ge=1, alias="DB_CONNECTION_TIMEOUT"
    )
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=1, alias="DB_MAX_RETRIES")
    retry_base_delay_ms: int = Field(default=DEFAULT_RETRY_BASE_DELAY_MS, ge=0, alias="DB_RETRY_BASE_DELAY")


def load_config() -> ConnectionConfig:
    """Read settings from the environment and freeze them into a ConnectionConfig."""

    try:
        settings = DatabaseSettings()
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid database configuration: {_describe(exc)}") from None
    return ConnectionConfig(
        database_url=settings.database_url,
        pool_size=settings.pool_size,
        connection_timeout_ms=settings.connection_timeout_ms,
        max_retries=settings.max_retries,
        retry_base_delay_ms=settings.retry_base_delay_ms,
    )


def _describe(exc: ValidationError) -> str:
    # Never echo input values; DATABASE_URL carries credentials.
    parts: list[str] = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg', 'invalid value')}")
    return "; ".join(parts)


__all__ = [
    "ConnectionConfig",
    "DEFAULT_CONNECTION_TIMEOUT_MS",
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_POOL_SIZE",
    "DEFAULT_RETRY_BASE_DELAY_MS",
    "DatabaseSettings",
    "load_config",
]
