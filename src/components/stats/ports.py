"""
Stats component port definitions.

Both read ports may hit durable storage and can be slow; callers apply
their own timeouts.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Protocol

from src.components.ingest.models import Event

from .models import ImportedDailyStat


class EventReadPort(Protocol):
    """Read-only access to stored events."""

    def list_events(self, site_id: str, start: datetime, end: datetime) -> list[Event]:
        """Events for a site with start <= timestamp < end."""
        ...


class ImportedStatsPort(Protocol):
    """Read access to imported daily rows."""

    def list_imported(
        self, site_id: str, start_date: date, end_date: date
    ) -> list[ImportedDailyStat]:
        """Rows for a site with start_date <= date <= end_date."""
        ...


class TimePort(Protocol):
    """Time provider interface."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        ...
