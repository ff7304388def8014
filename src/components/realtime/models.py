"""
Realtime component input/output models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

# --- Validation Error ---


@dataclass(frozen=True)
class RealtimeValidationError:
    """Realtime validation error."""

    code: str
    message: str
    field_name: str | None = None


# --- Enums ---


VisitorTrend = Literal["increasing", "decreasing", "stable"]


# --- Configuration ---


@dataclass(frozen=True)
class RealtimeConfig:
    """Realtime configuration from rules."""

    default_window_minutes: int = 30
    max_window_minutes: int = 1440
    retention_minutes: int = 1440
    trend_slice_minutes: int = 15
    trend_threshold: float = 0.10
    top_limit: int = 10
    recent_limit: int = 20


# --- Event Model ---


@dataclass(frozen=True)
class RealtimeEvent:
    """Accepted event as held in the live buffer."""

    site_id: str
    fingerprint: str
    timestamp: datetime
    path: str
    event_type: str = "pageview"
    name: str | None = None
    country: str | None = None
    device: str | None = None


# --- Input Models ---


@dataclass(frozen=True)
class GetRealtimeInput:
    """Input for a live snapshot."""

    site_id: str | None
    time_window_minutes: int | float | None = None
    limit: int | None = None
    recent_limit: int | None = None


# --- Output Models ---


@dataclass(frozen=True)
class PageVisitors:
    path: str
    visitors: int


@dataclass(frozen=True)
class CountryVisitors:
    country: str
    visitors: int


@dataclass(frozen=True)
class RecentEvent:
    """Event as exposed to callers. Carries no visitor identity."""

    timestamp: datetime
    path: str
    event_type: str
    name: str | None = None
    country: str | None = None
    device: str | None = None


@dataclass(frozen=True)
class RealtimeSnapshot:
    """Point-in-time live metrics for one site."""

    site_id: str
    window_minutes: float
    generated_at: datetime
    active_visitors: int
    page_views: int
    top_pages: tuple[PageVisitors, ...]
    top_countries: tuple[CountryVisitors, ...]
    recent_events: tuple[RecentEvent, ...]
    device_breakdown: dict[str, int]
    visitor_trend: VisitorTrend


@dataclass(frozen=True)
class RealtimeOutput:
    """Output for realtime query."""

    snapshot: RealtimeSnapshot | None
    errors: list[RealtimeValidationError] = field(default_factory=list)
    success: bool = True
