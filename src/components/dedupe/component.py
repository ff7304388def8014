"""
Dedupe component - Replay suppression for ingested events.

Collapses semantically identical submissions that arrive within a short
window into a single accepted event.

Invariants:
- Of N identical events inside the window, exactly one is accepted
- Keys carry no PII (the visitor appears only as its daily fingerprint)
- Keys are transient; they are never persisted as event data
- Never blocks on I/O
"""

from __future__ import annotations

import hashlib
from datetime import UTC, datetime

from ._impl import ShardedDedupeStore
from .models import DedupeConfig, DedupeInput, DedupeResult
from .ports import DedupeStorePort, TimePort

DEFAULT_CONFIG = DedupeConfig()


# --- Pure Functions (Functional Core) ---


def get_timestamp_bucket(timestamp: datetime, bucket_seconds: float) -> str:
    """
    Coarse time bucket for an event timestamp.

    Events in the same bucket are candidates for deduplication.
    """
    epoch = timestamp.timestamp()
    size = max(1, int(bucket_seconds))
    bucket = int(epoch // size) * size
    return str(bucket)


def generate_dedupe_key(
    site_id: str,
    fingerprint: str,
    event_type: str,
    path: str | None = None,
    name: str | None = None,
    timestamp_bucket: str | None = None,
) -> str:
    """Stable hash over the dedup-relevant fields of an event."""
    parts = [
        site_id or "",
        fingerprint or "",
        event_type or "",
        name or "",
        path or "",
        timestamp_bucket or "",
    ]
    return hashlib.sha256("|".join(parts).encode()).hexdigest()[:32]


def key_for(inp: DedupeInput, config: DedupeConfig = DEFAULT_CONFIG) -> str:
    bucket = get_timestamp_bucket(inp.timestamp, config.bucket_seconds)
    return generate_dedupe_key(
        site_id=inp.site_id,
        fingerprint=inp.fingerprint,
        event_type=inp.event_type,
        path=inp.path,
        name=inp.name,
        timestamp_bucket=bucket,
    )


# --- Service (Shell) ---


class _SystemTime:
    def now_utc(self) -> datetime:
        return datetime.now(UTC)


class DedupeService:
    """
    Deduplication service.

    The store decides atomically per key; racing identical submissions see
    exactly one non-duplicate result.
    """

    def __init__(
        self,
        store: DedupeStorePort | None = None,
        time_port: TimePort | None = None,
        config: DedupeConfig | None = None,
    ) -> None:
        self._config = config or DEFAULT_CONFIG
        self._store = store or ShardedDedupeStore(
            shard_count=self._config.shard_count,
            max_entries_per_shard=self._config.max_entries_per_shard,
        )
        self._time = time_port or _SystemTime()

    @property
    def window_seconds(self) -> float:
        return self._config.window_seconds

    def is_duplicate(self, dedupe_key: str, now: datetime | None = None) -> bool:
        """Check a key; records it when it is not a duplicate."""
        if not self._config.enabled:
            return False
        return self._store.check_and_record(
            dedupe_key,
            now or self._time.now_utc(),
            self._config.window_seconds,
        )

    def check_and_record(self, inp: DedupeInput, now: datetime | None = None) -> DedupeResult:
        key = key_for(inp, self._config)
        return DedupeResult(is_duplicate=self.is_duplicate(key, now), dedupe_key=key)

    def forget(self, dedupe_key: str, recorded_at: datetime) -> bool:
        """Undo a record whose event could not be stored, so a retry is accepted."""
        return self._store.forget(dedupe_key, recorded_at)

    def cleanup(self, now: datetime | None = None) -> int:
        """Sweep expired entries."""
        return self._store.cleanup_expired(
            now or self._time.now_utc(),
            self._config.window_seconds,
        )


def create_dedupe_service(
    store: DedupeStorePort | None = None,
    time_port: TimePort | None = None,
    config: DedupeConfig | None = None,
) -> DedupeService:
    """Create a DedupeService."""
    return DedupeService(store=store, time_port=time_port, config=config)


def run(inp: DedupeInput, *, service: DedupeService) -> DedupeResult:
    """Main component entry point."""
    return service.check_and_record(inp)
