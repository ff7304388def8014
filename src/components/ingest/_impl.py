"""
In-memory event store for testing/dev.
"""

from __future__ import annotations

from datetime import datetime
from threading import Lock

from .models import Event


class InMemoryEventStore:
    """Append-only event store guarded by a single lock."""

    def __init__(self) -> None:
        self._events: list[Event] = []
        self._lock = Lock()

    def append(self, event: Event) -> None:
        with self._lock:
            self._events.append(event)

    def list_events(self, site_id: str, start: datetime, end: datetime) -> list[Event]:
        """Events for a site with start <= timestamp < end."""
        with self._lock:
            return [
                e for e in self._events if e.site_id == site_id and start <= e.timestamp < end
            ]

    def get_all(self) -> list[Event]:
        """Get all stored events (for testing)."""
        with self._lock:
            return list(self._events)


class InMemorySiteDirectory:
    def __init__(self, site_ids: set[str] | None = None) -> None:
        self._site_ids = set(site_ids or ())

    def add(self, site_id: str) -> None:
        self._site_ids.add(site_id)

    def site_exists(self, site_id: str) -> bool:
        return site_id in self._site_ids
