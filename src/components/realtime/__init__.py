"""
Realtime component - Live site activity over a sliding window.
"""

from ._impl import InMemoryEventBuffer
from .component import (
    build_snapshot,
    create_event_buffer,
    events_in_window,
    get_active_visitors,
    get_device_breakdown,
    get_page_views,
    get_recent_events,
    get_top_countries,
    get_top_pages,
    get_visitor_trend,
    run,
    run_get_realtime,
    validate_realtime_request,
)
from .models import (
    CountryVisitors,
    GetRealtimeInput,
    PageVisitors,
    RealtimeConfig,
    RealtimeEvent,
    RealtimeOutput,
    RealtimeSnapshot,
    RealtimeValidationError,
    RecentEvent,
    VisitorTrend,
)
from .ports import EventBufferPort, TimePort

__all__ = [
    # Entry points
    "run",
    "run_get_realtime",
    "create_event_buffer",
    # Pure functions
    "build_snapshot",
    "events_in_window",
    "get_active_visitors",
    "get_device_breakdown",
    "get_page_views",
    "get_recent_events",
    "get_top_countries",
    "get_top_pages",
    "get_visitor_trend",
    "validate_realtime_request",
    # Buffer
    "InMemoryEventBuffer",
    # Models
    "CountryVisitors",
    "GetRealtimeInput",
    "PageVisitors",
    "RealtimeConfig",
    "RealtimeEvent",
    "RealtimeOutput",
    "RealtimeSnapshot",
    "RealtimeValidationError",
    "RecentEvent",
    "VisitorTrend",
    # Ports
    "EventBufferPort",
    "TimePort",
]
