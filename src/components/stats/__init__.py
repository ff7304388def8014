"""
Stats component - Historical summaries over closed date ranges.
"""

from ._impl import InMemoryImportedStatsStore
from .component import (
    StatsEngine,
    compute_breakdown,
    compute_daily_series,
    compute_session_metrics,
    compute_stats,
    create_stats_engine,
    resolve_period,
    run,
    run_get_stats,
    validate_stats_request,
)
from .models import (
    ALL_DIMENSIONS,
    PERIOD_DAYS,
    BreakdownRow,
    DailyRow,
    Dimension,
    GetStatsInput,
    ImportedDailyStat,
    Period,
    StatsConfig,
    StatsOutput,
    StatsSummary,
    StatsValidationError,
)
from .ports import EventReadPort, ImportedStatsPort, TimePort

__all__ = [
    # Entry points
    "run",
    "run_get_stats",
    "StatsEngine",
    "create_stats_engine",
    # Pure functions
    "compute_breakdown",
    "compute_daily_series",
    "compute_session_metrics",
    "compute_stats",
    "resolve_period",
    "validate_stats_request",
    # Store
    "InMemoryImportedStatsStore",
    # Models
    "ALL_DIMENSIONS",
    "PERIOD_DAYS",
    "BreakdownRow",
    "DailyRow",
    "Dimension",
    "GetStatsInput",
    "ImportedDailyStat",
    "Period",
    "StatsConfig",
    "StatsOutput",
    "StatsSummary",
    "StatsValidationError",
    # Ports
    "EventReadPort",
    "ImportedStatsPort",
    "TimePort",
]
