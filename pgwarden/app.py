"""Command line entry point and Textual status monitor."""

from __future__ import annotations

import argparse
import logging
import sys

from textual.app import App, ComposeResult
from textual.containers import Vertical
from textual.logging import TextualHandler
from textual.widgets import Footer, Header

from .health import HealthReporter, SystemHealth
from .models import ConnectionResult, ConnectionStatus, SupervisorState
from .supervisor import ConnectionSupervisor, get_supervisor
from .threaded import ThreadedSupervisor
from .widgets import HealthPanel, StatusBar

LOG = logging.getLogger(__name__)

HEALTH_INTERVAL = 15.0


class PgwardenApp(App[None]):
    """Terminal monitor hosting the supervisor for the lifetime of the app."""

    TITLE = "pgwarden"
    CSS = """
    Screen {
        layout: vertical;
    }
    #main-column {
        padding: 1 2;
        height: 1fr;
    }
    """

    BINDINGS = [
        ("ctrl+c", "quit", "Quit"),
        ("ctrl+r", "reconnect", "Reconnect"),
        ("ctrl+h", "probe", "Probe Health"),
    ]

    def __init__(
        self,
        supervisor: ConnectionSupervisor | None = None,
        *,
        health_interval: float = HEALTH_INTERVAL,
    ) -> None:
        super().__init__()
        self._supervisor = supervisor or get_supervisor()
        self._reporter = HealthReporter(self._supervisor)
        self._health_interval = health_interval
        self._last_status: ConnectionStatus | None = None
        self._last_health: SystemHealth | None = None
        self._pending_notifications: list[tuple[str, str]] = []
        self._unsubscribe = self._supervisor.subscribe(self._handle_status)

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield Vertical(HealthPanel(), id="main-column")
        yield StatusBar(self._supervisor)
        yield Footer()

    async def on_mount(self) -> None:
        self._flush_pending_notifications()
        self.run_worker(self._start_supervisor(), name="supervisor-init", exclusive=True)
        self.set_interval(self._health_interval, self.action_probe)

    @property
    def supervisor(self) -> ConnectionSupervisor:
        """Expose the supervisor for tests and future wiring."""

        return self._supervisor

    @property
    def last_health(self) -> SystemHealth | None:
        return self._last_health

    async def action_reconnect(self) -> ConnectionResult:
        result = await self._supervisor.reconnect()
        severity = "information" if result.success else "error"
        self._safe_notify(result.message, severity=severity)
        return result

    async def action_probe(self) -> SystemHealth:
        health = await self._reporter.check()
        self._last_health = health
        if self.is_running:
            self.query_one(HealthPanel).show(health)
        return health

    async def _start_supervisor(self) -> None:
        result = await self._supervisor.initialize()
        if not result.success:
            self._safe_notify(f"Database unavailable: {result.message}", severity="warning")
        await self.action_probe()

    async def _shutdown(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        await self._supervisor.disconnect()
        await super()._shutdown()

    def _handle_status(self, status: ConnectionStatus) -> None:
        previous = self._last_status
        if previous and previous.connected and status.state is SupervisorState.RECOVERING:
            self._safe_notify("Database connection lost; background recovery started.", severity="warning")
        elif previous and previous.state is SupervisorState.RECOVERING and status.connected:
            self._safe_notify("Database connection restored.", severity="information")
        self._last_status = status

    def _safe_notify(self, message: str, *, severity: str = "information") -> None:
        if self.is_running:
            try:
                self.notify(message, severity=severity)
            except Exception:
                LOG.exception("Failed to display notification", extra={"notification": message})
        else:
            self._pending_notifications.append((message, severity))

    def _flush_pending_notifications(self) -> None:
        if not self._pending_notifications:
            return
        pending = list(self._pending_notifications)
        self._pending_notifications.clear()
        for message, severity in pending:
            try:
                self.notify(message, severity=severity)
            except Exception:
                LOG.exception("Failed to display queued notification", extra={"notification": message})


def run_check(supervisor: ConnectionSupervisor | None = None) -> int:
    """Initialize once, print the health body, and report success as an exit code."""

    runner = ThreadedSupervisor(supervisor)
    try:
        result = runner.initialize()
        health = runner.run(HealthReporter(runner.supervisor).check())
        print(health.model_dump_json(indent=2, exclude_none=True))
        return 0 if result.success else 1
    finally:
        runner.shutdown()


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="pgwarden", description="Supervise a PostgreSQL connection.")
    parser.add_argument(
        "command",
        nargs="?",
        choices=("monitor", "check"),
        default="monitor",
        help="'monitor' opens the status UI, 'check' runs a single health check",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Invoke the requested command."""

    args = parse_args(sys.argv[1:] if argv is None else argv)
    level = args.log_level.upper()
    if args.command == "check":
        logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
        return run_check()
    logging.basicConfig(level=level, handlers=[TextualHandler()])
    PgwardenApp().run()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
