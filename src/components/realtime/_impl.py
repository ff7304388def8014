"""
In-memory realtime event buffer.

One guarded deque per site, so writers for unrelated sites never contend.
Readers take a snapshot under the site lock and fold it lock-free.
Pruning only bounds memory; window queries always re-filter by timestamp.
"""

from __future__ import annotations

from collections import deque
from datetime import datetime, timedelta
from threading import Lock

from .models import RealtimeEvent


class _SiteBuffer:
    def __init__(self) -> None:
        self.lock = Lock()
        self.events: deque[RealtimeEvent] = deque()
        # Set once prune has unregistered this buffer
        self.retired = False

    def trim_head(self, cutoff: datetime) -> None:
        """Cheap pruning from the oldest end. Caller holds the lock."""
        while self.events and self.events[0].timestamp < cutoff:
            self.events.popleft()

    def sweep(self, cutoff: datetime) -> int:
        """Full pass; also catches events that arrived out of order. Caller holds the lock."""
        before = len(self.events)
        self.events = deque(e for e in self.events if e.timestamp >= cutoff)
        return before - len(self.events)


class InMemoryEventBuffer:
    """Sharded per-site buffer bounded by a retention horizon."""

    def __init__(self, retention_minutes: int = 1440, max_events_per_site: int = 100_000) -> None:
        self._retention = timedelta(minutes=retention_minutes)
        self._max_events = max_events_per_site
        self._sites: dict[str, _SiteBuffer] = {}
        self._registry_lock = Lock()

    def _site(self, site_id: str) -> _SiteBuffer:
        buf = self._sites.get(site_id)
        if buf is None:
            with self._registry_lock:
                buf = self._sites.setdefault(site_id, _SiteBuffer())
        return buf

    def append(self, event: RealtimeEvent) -> None:
        while True:
            buf = self._site(event.site_id)
            with buf.lock:
                if buf.retired:
                    continue
                buf.events.append(event)
                buf.trim_head(event.timestamp - self._retention)
                while len(buf.events) > self._max_events:
                    buf.events.popleft()
                return

    def snapshot(self, site_id: str) -> tuple[RealtimeEvent, ...]:
        buf = self._sites.get(site_id)
        if buf is None:
            return ()
        with buf.lock:
            return tuple(buf.events)

    def prune(self, now: datetime) -> int:
        """
        Drop events past retention and unregister sites left empty.

        Returns the number of events removed.
        """
        cutoff = now - self._retention
        removed = 0
        # Lock order is registry, then site
        with self._registry_lock:
            for site_id, buf in list(self._sites.items()):
                with buf.lock:
                    removed += buf.sweep(cutoff)
                    if not buf.events:
                        buf.retired = True
                        del self._sites[site_id]
        return removed

    def site_ids(self) -> list[str]:
        with self._registry_lock:
            return list(self._sites)

    def clear(self) -> None:
        """Clear all buffers (for testing)."""
        with self._registry_lock:
            self._sites.clear()
