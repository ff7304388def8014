"""
Ingest component port definitions.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from .models import Event


class EventStorePort(Protocol):
    """Durable event store interface."""

    def append(self, event: Event) -> None:
        """Persist an accepted event."""
        ...


class TimePort(Protocol):
    """Time provider interface."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        ...


class SiteDirectoryPort(Protocol):
    """Registered-site lookup."""

    def site_exists(self, site_id: str) -> bool:
        ...
