"""
In-memory imported stats store for testing/dev.
"""

from __future__ import annotations

from datetime import date
from threading import Lock

from .models import ImportedDailyStat


class InMemoryImportedStatsStore:
    def __init__(self) -> None:
        self._rows: list[ImportedDailyStat] = []
        self._lock = Lock()

    def add_rows(self, rows: list[ImportedDailyStat]) -> int:
        with self._lock:
            self._rows.extend(rows)
        return len(rows)

    def list_imported(
        self, site_id: str, start_date: date, end_date: date
    ) -> list[ImportedDailyStat]:
        with self._lock:
            return [
                r for r in self._rows if r.site_id == site_id and start_date <= r.date <= end_date
            ]

    def get_all(self) -> list[ImportedDailyStat]:
        """Get all rows (for testing)."""
        with self._lock:
            return list(self._rows)
