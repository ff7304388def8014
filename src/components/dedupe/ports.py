"""
Dedupe component port definitions.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol


class DedupeStorePort(Protocol):
    """Key -> last-seen store."""

    def check_and_record(self, key: str, now: datetime, window_seconds: float) -> bool:
        """
        Atomically test and record a key.

        Returns True if `key` was seen within the window (duplicate); otherwise
        records `key -> now` and returns False.
        """
        ...

    def forget(self, key: str, recorded_at: datetime) -> bool:
        """
        Release a key recorded at `recorded_at`.

        A later record of the same key is left alone. Returns True if removed.
        """
        ...

    def cleanup_expired(self, now: datetime, window_seconds: float) -> int:
        """Remove expired entries. Returns count removed."""
        ...


class TimePort(Protocol):
    """Time provider interface."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        ...
