"""
Dedupe component - Replay suppression for ingested events.
"""

from ._impl import ShardedDedupeStore
from .component import (
    DedupeService,
    create_dedupe_service,
    generate_dedupe_key,
    get_timestamp_bucket,
    key_for,
    run,
)
from .models import DedupeConfig, DedupeInput, DedupeResult
from .ports import DedupeStorePort, TimePort

__all__ = [
    "run",
    "DedupeService",
    "create_dedupe_service",
    "generate_dedupe_key",
    "get_timestamp_bucket",
    "key_for",
    "ShardedDedupeStore",
    "DedupeConfig",
    "DedupeInput",
    "DedupeResult",
    "DedupeStorePort",
    "TimePort",
]
