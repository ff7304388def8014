"""
Ingest component input/output models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

# --- Validation Error ---


@dataclass(frozen=True)
class IngestValidationError:
    """Ingestion validation error. Never carries raw request attributes."""

    code: str
    message: str
    field_name: str | None = None


# --- Enums ---


IngestStatus = Literal["accepted", "duplicate", "rejected"]

# Closed set of property value kinds
PropertyScalar = str | int | float | bool | None
PropertyValue = PropertyScalar | list[PropertyScalar] | dict[str, PropertyScalar]


# --- Configuration ---


@dataclass(frozen=True)
class IngestConfig:
    """Event ingestion configuration."""

    allowed_types: frozenset[str] = field(
        default_factory=lambda: frozenset({"pageview", "custom"}),
    )
    allowed_fields: frozenset[str] = field(
        default_factory=lambda: frozenset(
            {
                "type",
                "name",
                "path",
                "url",
                "ts",
                "session_id",
                "properties",
                "referrer",
                "country",
                "device",
                "browser",
            }
        ),
    )
    forbidden_fields: frozenset[str] = field(
        default_factory=lambda: frozenset({"ip", "ip_address", "user_agent", "email", "cookie"}),
    )
    max_properties: int = 20
    max_property_key_length: int = 64
    max_property_value_length: int = 500
    max_path_length: int = 2048
    max_name_length: int = 100
    reject_bots: bool = True

    # Timestamp validation
    max_timestamp_age_seconds: int = 300
    max_timestamp_future_seconds: int = 60


# --- Event Model ---


@dataclass(frozen=True)
class Event:
    """Accepted event. Immutable once created."""

    site_id: str
    fingerprint: str
    type: str
    path: str
    timestamp: datetime
    session_id: str | None = None
    name: str | None = None
    properties: dict[str, PropertyValue] = field(default_factory=dict)
    country: str | None = None
    device: str | None = None
    browser: str | None = None
    referrer: str | None = None

    @property
    def session_key(self) -> str:
        """Session grouping key; falls back to the daily visitor fingerprint."""
        return self.session_id or self.fingerprint


# --- Input Models ---


@dataclass(frozen=True)
class RequestMetadata:
    """Raw connection attributes. Consumed by hashing, never stored."""

    ip: str | None = None
    user_agent: str | None = None
    host: str | None = None
    country: str | None = None

    def __repr__(self) -> str:
        return f"RequestMetadata(host={self.host!r}, country={self.country!r})"


@dataclass(frozen=True)
class IngestEventInput:
    """Input for ingesting one event."""

    site_id: str | None
    payload: dict[str, Any]
    metadata: RequestMetadata = field(default_factory=RequestMetadata)


# --- Output Models ---


@dataclass(frozen=True)
class IngestOutput:
    """Ingestion outcome. Duplicate is a successful no-op."""

    status: IngestStatus
    event: Event | None = None
    reason: str | None = None
    errors: list[IngestValidationError] = field(default_factory=list)
    success: bool = True
