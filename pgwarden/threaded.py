"""Synchronous facade running the supervisor on a dedicated event loop thread."""

from __future__ import annotations

import asyncio
import threading
from typing import Any, Coroutine, TypeVar

from .client import QueryClient
from .models import ConnectionResult, ConnectionStatus
from .supervisor import ConnectionSupervisor

T = TypeVar("T")


class ThreadedSupervisor:
    """Drives a ConnectionSupervisor from blocking code.

    Retry waits and the recovery loop run on the worker thread's loop, so the
    calling thread only blocks for the operation it asked for. Read accessors
    are answered directly without a round trip through the loop.
    """

    def __init__(self, supervisor: ConnectionSupervisor | None = None) -> None:
        self._supervisor = supervisor or ConnectionSupervisor()
        self._loop = asyncio.new_event_loop()
        self._loop_thread = threading.Thread(
            target=self._loop.run_forever,
            name="pgwarden-supervisor",
            daemon=True,
        )
        self._loop_thread.start()

    @property
    def supervisor(self) -> ConnectionSupervisor:
        return self._supervisor

    def initialize(self) -> ConnectionResult:
        return self.run(self._supervisor.initialize())

    def reconnect(self) -> ConnectionResult:
        return self.run(self._supervisor.reconnect())

    def disconnect(self) -> None:
        self.run(self._supervisor.disconnect())

    def get_client(self) -> QueryClient | None:
        return self._supervisor.get_client()

    def is_connected(self) -> bool:
        return self._supervisor.is_connected()

    def get_status(self) -> ConnectionStatus:
        return self._supervisor.get_status()

    def run(self, coro: Coroutine[Any, Any, T]) -> T:
        """Run ``coro`` on the supervisor loop and wait for its result."""

        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result()

    def shutdown(self) -> None:
        """Disconnect and stop the worker loop."""

        if not self._loop.is_running():
            return
        try:
            self.disconnect()
        finally:
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._loop_thread.join(timeout=1)


__all__ = ["ThreadedSupervisor"]
