"""Base class for repositories built on the supervised client."""

from __future__ import annotations

from .client import QueryClient
from .errors import ClientNotInitializedError
from .supervisor import ConnectionSupervisor, get_supervisor


class BaseRepository:
    """Grabs the query client once, at construction.

    Subclasses issue their queries through ``self.db``. Construction fails
    when the supervisor has never connected, so a repository instance is
    always usable.
    """

    def __init__(self, supervisor: ConnectionSupervisor | None = None) -> None:
        client = (supervisor or get_supervisor()).get_client()
        if client is None:
            raise ClientNotInitializedError(
                "Database client not initialized. Call ConnectionSupervisor.initialize() "
                "before creating repository instances."
            )
        self._db = client

    @property
    def db(self) -> QueryClient:
        return self._db


__all__ = ["BaseRepository"]
