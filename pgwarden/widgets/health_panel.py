"""Panel showing the latest health probe."""

from __future__ import annotations

from textual.widgets import Static

from pgwarden.health import SystemHealth


class HealthPanel(Static):
    """Shows the outcome of the most recent probe."""

    DEFAULT_CSS = """
    HealthPanel {
        height: auto;
        padding: 1 2;
        border: round $primary;
    }
    HealthPanel.unhealthy {
        border: round $error;
    }
    HealthPanel.degraded {
        border: round $warning;
    }
    """

    def __init__(self) -> None:
        super().__init__("Waiting for first health probe…", id="health-panel")

    def show(self, health: SystemHealth) -> None:
        self.set_class(health.status == "unhealthy", "unhealthy")
        self.set_class(health.status == "degraded", "degraded")
        self.update(describe_health(health))


def describe_health(health: SystemHealth) -> str:
    database = health.database
    lines = [f"Status: {health.status} (HTTP {health.http_status})"]
    if database.response_time_ms is not None:
        lines.append(f"Response time: {database.response_time_ms} ms")
    if database.last_connected_at:
        lines.append(f"Last connected: {database.last_connected_at.astimezone():%Y-%m-%d %H:%M:%S}")
    if database.error:
        lines.append(f"Error: {database.error}")
    lines.append(f"Checked: {health.timestamp.astimezone():%H:%M:%S}")
    return "\n".join(lines)


__all__ = ["HealthPanel", "describe_health"]
