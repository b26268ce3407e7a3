"""Widget library for the Textual monitor."""

from __future__ import annotations

from .health_panel import HealthPanel
from .status_bar import StatusBar

__all__ = ["HealthPanel", "StatusBar"]
