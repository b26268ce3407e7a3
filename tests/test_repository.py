"""Tests for the repository base class."""

from __future__ import annotations

from typing import Any

import pytest

from pgwarden.client import QueryClient
from pgwarden.config import ConnectionConfig
from pgwarden.errors import ClientNotInitializedError
from pgwarden.repository import BaseRepository
from pgwarden.supervisor import ConnectionSupervisor


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class _FakePool:
    async def fetchval(self, query: str, *args: Any, timeout: float | None = None) -> int:
        return 1

    async def fetch(self, query: str, *args: Any) -> list[dict[str, object]]:
        return [{"id": args[0], "email": "alice@example.com"}]

    async def close(self) -> None:
        return None


class _AccountRepository(BaseRepository):
    async def get(self, account_id: int) -> dict[str, object]:
        rows = await self.db.fetch("SELECT id, email FROM accounts WHERE id = $1", account_id)
        return rows[0]


def _supervisor() -> ConnectionSupervisor:
    async def _factory(_config: ConnectionConfig) -> _FakePool:
        return _FakePool()

    config = ConnectionConfig(database_url="postgresql://app:secret@db:5432/app")
    return ConnectionSupervisor(config, pool_factory=_factory)


def test_repository_requires_initialized_supervisor() -> None:
    with pytest.raises(ClientNotInitializedError, match="initialize"):
        BaseRepository(_supervisor())


@pytest.mark.anyio
async def test_repository_queries_through_shared_client() -> None:
    supervisor = _supervisor()
    await supervisor.initialize()
    try:
        repository = _AccountRepository(supervisor)

        assert isinstance(repository.db, QueryClient)
        assert repository.db is supervisor.get_client()
        assert await repository.get(7) == {"id": 7, "email": "alice@example.com"}
    finally:
        await supervisor.disconnect()
