"""Status bar widget that mirrors the supervisor state."""

from __future__ import annotations

from typing import Callable

from textual.widgets import Static

from pgwarden.models import ConnectionStatus
from pgwarden.supervisor import ConnectionSupervisor


class StatusBar(Static):
    """Compact status strip rendered above Textual's footer."""

    DEFAULT_CSS = """
    StatusBar {
        height: 1;
        padding: 0 1;
        background: $surface-darken-3;
        color: $text;
    }
    """

    def __init__(self, supervisor: ConnectionSupervisor) -> None:
        super().__init__(describe_status(supervisor.get_status()), id="status-bar")
        self._supervisor = supervisor
        self._unsubscribe: Callable[[], None] | None = None

    async def on_mount(self) -> None:
        self._unsubscribe = self._supervisor.subscribe(self._handle_status)
        self._handle_status(self._supervisor.get_status())

    def on_unmount(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def _handle_status(self, status: ConnectionStatus) -> None:
        self.update(describe_status(status))


def describe_status(status: ConnectionStatus) -> str:
    """Render a one-line summary of the connection status."""

    refreshed = (
        status.last_connected_at.astimezone().strftime("%H:%M:%S")
        if status.last_connected_at
        else "never"
    )
    parts = [
        f"Database: {status.database_url or 'unset'}",
        f"State: {status.state.value}",
        f"Attempts: {status.retry_count}",
        f"Last connected: {refreshed}",
    ]
    if status.recovering:
        parts.append("Recovery: running")
    if status.last_error:
        reason = status.last_error.splitlines()[0][:80]
        parts.append(f"Error: {reason}")
    return " | ".join(parts)


__all__ = ["StatusBar", "describe_status"]
