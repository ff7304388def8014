"""
Realtime component port definitions.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from .models import RealtimeEvent


class EventBufferPort(Protocol):
    """Per-site buffer of recent events."""

    def append(self, event: RealtimeEvent) -> None:
        """Record an accepted event."""
        ...

    def snapshot(self, site_id: str) -> tuple[RealtimeEvent, ...]:
        """Immutable copy of a site's buffered events."""
        ...

    def prune(self, now: datetime) -> int:
        """Drop events older than the retention horizon. Returns count removed."""
        ...


class TimePort(Protocol):
    """Time provider interface."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        ...
