"""
Stats component input/output models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Literal

# --- Validation Error ---


@dataclass(frozen=True)
class StatsValidationError:
    """Stats validation error."""

    code: str
    message: str
    field_name: str | None = None


# --- Enums ---


Dimension = Literal["pages", "referrers", "devices", "browsers", "countries"]

ALL_DIMENSIONS: tuple[Dimension, ...] = ("pages", "referrers", "devices", "browsers", "countries")

Period = Literal["24h", "7d", "30d", "90d", "365d"]

# Calendar days covered by each period preset, ending today
PERIOD_DAYS: dict[str, int] = {
    "24h": 1,
    "7d": 7,
    "30d": 30,
    "90d": 90,
    "365d": 365,
}


# --- Configuration ---


@dataclass(frozen=True)
class StatsConfig:
    """Stats configuration from rules."""

    reporting_timezone: str = "UTC"
    breakdown_limit: int = 10
    max_range_days: int = 731


# --- Imported Rows ---


@dataclass(frozen=True)
class ImportedDailyStat:
    """
    One pre-aggregated row from an external analytics export.

    Merged into summaries alongside native events.
    """

    site_id: str
    date: date
    path: str = "/"
    referrer: str = "direct"
    country: str = "Unknown"
    device: str | None = None
    pageviews: int = 0
    visitors: int = 0
    sessions: int = 0
    bounce_rate: float = 0.0
    avg_session_duration: float = 0.0
    import_id: str | None = None


# --- Input Models ---


@dataclass(frozen=True)
class GetStatsInput:
    """Input for a historical summary. Either a date range or a period."""

    site_id: str | None
    start_date: date | None = None
    end_date: date | None = None
    period: str | None = None
    dimensions: tuple[str, ...] | None = None


# --- Output Models ---


@dataclass(frozen=True)
class BreakdownRow:
    value: str
    count: int
    visitors: int


@dataclass(frozen=True)
class DailyRow:
    date: date
    pageviews: int
    visitors: int


@dataclass(frozen=True)
class StatsSummary:
    """Computed aggregate over a closed date range. Never stored."""

    site_id: str
    start_date: date
    end_date: date
    unique_visitors: int
    pageviews: int
    sessions: int
    bounce_rate: float
    avg_session_duration: float
    breakdowns: dict[str, tuple[BreakdownRow, ...]]
    daily: tuple[DailyRow, ...]


@dataclass(frozen=True)
class StatsOutput:
    """Output for stats query."""

    summary: StatsSummary | None
    errors: list[StatsValidationError] = field(default_factory=list)
    success: bool = True
