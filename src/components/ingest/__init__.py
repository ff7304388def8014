"""
Ingest component - Event collection pipeline.
"""

from ._impl import InMemoryEventStore, InMemorySiteDirectory
from ._useragent import UAClass, classify_user_agent, is_bot, parse_browser, parse_device
from .component import (
    DIRECT_REFERRER,
    EventIngestor,
    create_event_ingestor,
    normalize_path,
    normalize_referrer,
    run,
    run_ingest,
    validate_event_type,
    validate_forbidden_fields,
    validate_properties,
    validate_timestamp,
)
from .models import (
    Event,
    IngestConfig,
    IngestEventInput,
    IngestOutput,
    IngestStatus,
    IngestValidationError,
    RequestMetadata,
)
from .ports import EventStorePort, SiteDirectoryPort, TimePort

__all__ = [
    # Entry points
    "run",
    "run_ingest",
    "EventIngestor",
    "create_event_ingestor",
    # Validation / normalisation
    "normalize_path",
    "normalize_referrer",
    "validate_event_type",
    "validate_forbidden_fields",
    "validate_properties",
    "validate_timestamp",
    "DIRECT_REFERRER",
    # User agent
    "UAClass",
    "classify_user_agent",
    "is_bot",
    "parse_browser",
    "parse_device",
    # Adapters
    "InMemoryEventStore",
    "InMemorySiteDirectory",
    # Models
    "Event",
    "IngestConfig",
    "IngestEventInput",
    "IngestOutput",
    "IngestStatus",
    "IngestValidationError",
    "RequestMetadata",
    # Ports
    "EventStorePort",
    "SiteDirectoryPort",
    "TimePort",
]
