"""
Dedupe component input/output models.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class DedupeConfig:
    """Deduplication configuration."""

    enabled: bool = True
    window_seconds: float = 5.0
    # Coarse key bucket; sliding-window expiry is handled by the store
    bucket_seconds: int = 86_400
    shard_count: int = 16
    max_entries_per_shard: int = 10_000


@dataclass(frozen=True)
class DedupeInput:
    """Dedup-relevant fields of an event."""

    site_id: str
    fingerprint: str
    event_type: str
    timestamp: datetime
    path: str | None = None
    name: str | None = None


@dataclass(frozen=True)
class DedupeResult:
    """Result of dedupe check."""

    is_duplicate: bool
    dedupe_key: str
