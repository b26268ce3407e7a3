"""Query client handed out to repositories and health checks."""

from __future__ import annotations

import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Iterable

import asyncpg

from .errors import QueryExecutionError
from .urls import sanitize_text

PROBE_QUERY = "SELECT 1"


@dataclass(frozen=True, slots=True)
class QueryResult:
    """Normalized query output."""

    columns: tuple[str, ...]
    rows: tuple[tuple[object, ...], ...]
    status: str
    elapsed_ms: int
    row_count: int | None = None


class QueryClient:
    """Thin facade over an asyncpg pool.

    The pool is safe for concurrent use, so callers share one client and never
    serialize their queries through the supervisor.
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    @property
    def pool(self) -> asyncpg.Pool:
        return self._pool

    async def ping(self) -> None:
        """Run the liveness probe."""

        await self._pool.fetchval(PROBE_QUERY)

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        return await self._pool.fetch(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        return await self._pool.fetchrow(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        return await self._pool.fetchval(query, *args)

    async def execute(self, query: str, *args: Any) -> str:
        return await self._pool.execute(query, *args)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        """Acquire a connection and wrap the block in a transaction."""

        async with self._pool.acquire() as conn:
            async with conn.transaction():
                yield conn

    async def run(self, sql: str) -> QueryResult:
        """Execute ad-hoc SQL and return a normalized result."""

        statement = sql.strip()
        if not statement:
            raise QueryExecutionError("Provide SQL to execute.")
        started = time.perf_counter()
        try:
            if _returns_rows(statement):
                records = await self._pool.fetch(statement)
                columns, rows = _records_to_rows(records)
                row_count: int | None = len(rows)
                status = f"{row_count} row(s)"
            else:
                status = await self._pool.execute(statement)
                columns, rows, row_count = (), (), None
        except Exception as exc:
            raise QueryExecutionError(sanitize_text(str(exc))) from exc
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        return QueryResult(
            columns=columns,
            rows=rows,
            status=status,
            elapsed_ms=elapsed_ms,
            row_count=row_count,
        )


def _returns_rows(statement: str) -> bool:
    token = statement.lstrip().split(None, 1)
    if not token:
        return False
    return token[0].lower() in {"select", "with", "show", "values", "table"}


def _records_to_rows(
    records: Iterable[asyncpg.Record],
) -> tuple[tuple[str, ...], tuple[tuple[object, ...], ...]]:
    rows: list[tuple[object, ...]] = []
    columns: tuple[str, ...] = ()
    for record in records:
        if not columns:
            columns = tuple(str(key) for key in record.keys())
        if not columns:
            continue
        rows.append(tuple(record[key] for key in columns))
    return columns, tuple(rows)


__all__ = ["PROBE_QUERY", "QueryClient", "QueryResult"]
