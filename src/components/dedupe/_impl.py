"""
Sharded in-memory dedupe store.

Each shard owns an insertion-ordered map guarded by its own lock, so
unrelated keys never contend on a single global lock. Expired entries are
evicted lazily on access and by `cleanup_expired`.
"""

from __future__ import annotations

import zlib
from collections import OrderedDict
from datetime import datetime
from threading import Lock


class _Shard:
    def __init__(self, max_entries: int) -> None:
        self.lock = Lock()
        self.entries: OrderedDict[str, datetime] = OrderedDict()
        self.max_entries = max_entries

    def purge(self, now: datetime, window_seconds: float) -> int:
        """Drop expired entries from the oldest end. Caller holds the lock."""
        removed = 0
        while self.entries:
            key, seen = next(iter(self.entries.items()))
            if (now - seen).total_seconds() < window_seconds:
                break
            del self.entries[key]
            removed += 1
        return removed


class ShardedDedupeStore:
    """In-memory dedupe store, safe for concurrent ingestion workers."""

    def __init__(self, shard_count: int = 16, max_entries_per_shard: int = 10_000) -> None:
        if shard_count < 1:
            raise ValueError("shard_count must be >= 1")
        self._shards = [_Shard(max_entries_per_shard) for _ in range(shard_count)]

    def _shard_for(self, key: str) -> _Shard:
        return self._shards[zlib.crc32(key.encode()) % len(self._shards)]

    def check_and_record(self, key: str, now: datetime, window_seconds: float) -> bool:
        shard = self._shard_for(key)
        with shard.lock:
            seen = shard.entries.get(key)
            if seen is not None and (now - seen).total_seconds() < window_seconds:
                return True

            shard.entries.pop(key, None)
            shard.entries[key] = now

            if len(shard.entries) > shard.max_entries:
                shard.purge(now, window_seconds)
            while len(shard.entries) > shard.max_entries:
                shard.entries.popitem(last=False)
            return False

    def forget(self, key: str, recorded_at: datetime) -> bool:
        shard = self._shard_for(key)
        with shard.lock:
            if shard.entries.get(key) != recorded_at:
                return False
            del shard.entries[key]
            return True

    def cleanup_expired(self, now: datetime, window_seconds: float) -> int:
        removed = 0
        for shard in self._shards:
            with shard.lock:
                removed += shard.purge(now, window_seconds)
        return removed

    def __len__(self) -> int:
        return sum(len(s.entries) for s in self._shards)

    def clear(self) -> None:
        """Clear all entries (for testing)."""
        for shard in self._shards:
            with shard.lock:
                shard.entries.clear()
