"""
Realtime component - Live site activity over a sliding window.

Folds a point-in-time snapshot of a site's buffered events into live
metrics. Reads never mutate the buffer and always re-filter by timestamp,
so buffer pruning has no effect on window results.
"""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime, timedelta

from ._impl import InMemoryEventBuffer
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

DEFAULT_CONFIG = RealtimeConfig()

UNKNOWN_DEVICE = "unknown"


# --- Validation ---


def validate_realtime_request(
    site_id: str | None,
    window_minutes: float | None,
    config: RealtimeConfig = DEFAULT_CONFIG,
) -> list[RealtimeValidationError]:
    errors: list[RealtimeValidationError] = []

    if not site_id or not site_id.strip():
        errors.append(
            RealtimeValidationError(
                code="site_id_required",
                message="Site ID is required",
                field_name="site_id",
            )
        )

    if window_minutes is not None and (
        not math.isfinite(window_minutes)
        or window_minutes <= 0
        or window_minutes > config.max_window_minutes
    ):
        errors.append(
            RealtimeValidationError(
                code="invalid_time_window",
                message=f"Time window must be between 1 and {config.max_window_minutes} minutes",
                field_name="time_window_minutes",
            )
        )

    return errors


# --- Pure Functions (Functional Core) ---


def events_in_window(
    events: Iterable[RealtimeEvent],
    now: datetime,
    window_minutes: float,
) -> list[RealtimeEvent]:
    """
    Events with timestamp >= now - window, oldest first.

    No upper bound: client clocks may run slightly ahead of ours.
    """
    cutoff = now - timedelta(minutes=window_minutes)
    return sorted(
        (e for e in events if e.timestamp >= cutoff),
        key=lambda e: e.timestamp,
    )


def get_active_visitors(events: Iterable[RealtimeEvent]) -> int:
    return len({e.fingerprint for e in events})


def get_page_views(events: Iterable[RealtimeEvent]) -> int:
    """Every windowed event counts, custom events included."""
    return sum(1 for _ in events)


def _top_by_visitors(pairs: Iterable[tuple[str, str]], limit: int) -> list[tuple[str, int]]:
    """
    Distinct-visitor count per dimension value.

    Dict insertion order records first-seen order; sorted() is stable, so
    equal counts keep it.
    """
    visitors: dict[str, set[str]] = {}
    for value, fingerprint in pairs:
        visitors.setdefault(value, set()).add(fingerprint)
    ranked = sorted(visitors.items(), key=lambda item: len(item[1]), reverse=True)
    return [(value, len(fps)) for value, fps in ranked[: max(0, limit)]]


def get_top_pages(events: Sequence[RealtimeEvent], limit: int = 10) -> list[PageVisitors]:
    ranked = _top_by_visitors(((e.path, e.fingerprint) for e in events), limit)
    return [PageVisitors(path=path, visitors=count) for path, count in ranked]


def get_top_countries(events: Sequence[RealtimeEvent], limit: int = 10) -> list[CountryVisitors]:
    """Events without a country are skipped."""
    ranked = _top_by_visitors(
        ((e.country, e.fingerprint) for e in events if e.country),  # type: ignore[misc]
        limit,
    )
    return [CountryVisitors(country=country, visitors=count) for country, count in ranked]


def get_recent_events(events: Sequence[RealtimeEvent], limit: int = 20) -> list[RecentEvent]:
    newest_first = sorted(events, key=lambda e: e.timestamp, reverse=True)
    return [
        RecentEvent(
            timestamp=e.timestamp,
            path=e.path,
            event_type=e.event_type,
            name=e.name,
            country=e.country,
            device=e.device,
        )
        for e in newest_first[: max(0, limit)]
    ]


def get_device_breakdown(events: Iterable[RealtimeEvent]) -> dict[str, int]:
    """Event counts (not visitors) per device category."""
    return dict(Counter(e.device or UNKNOWN_DEVICE for e in events))


def get_visitor_trend(
    events: Iterable[RealtimeEvent],
    now: datetime,
    slice_minutes: int = 15,
    threshold: float = 0.10,
) -> VisitorTrend:
    """
    Compare active visitors in the latest slice against the slice before it.
    """
    recent_start = now - timedelta(minutes=slice_minutes)
    previous_start = recent_start - timedelta(minutes=slice_minutes)

    recent: set[str] = set()
    previous: set[str] = set()
    for e in events:
        if e.timestamp >= recent_start:
            recent.add(e.fingerprint)
        elif previous_start <= e.timestamp < recent_start:
            previous.add(e.fingerprint)

    if len(recent) > len(previous) * (1 + threshold):
        return "increasing"
    if len(recent) < len(previous) * (1 - threshold):
        return "decreasing"
    return "stable"


def build_snapshot(
    site_id: str,
    events: Sequence[RealtimeEvent],
    now: datetime,
    window_minutes: float,
    config: RealtimeConfig = DEFAULT_CONFIG,
    limit: int | None = None,
    recent_limit: int | None = None,
) -> RealtimeSnapshot:
    """Fold a buffer snapshot into live metrics."""
    windowed = events_in_window(events, now, window_minutes)
    top_limit = limit if limit is not None else config.top_limit

    return RealtimeSnapshot(
        site_id=site_id,
        window_minutes=window_minutes,
        generated_at=now,
        active_visitors=get_active_visitors(windowed),
        page_views=get_page_views(windowed),
        top_pages=tuple(get_top_pages(windowed, top_limit)),
        top_countries=tuple(get_top_countries(windowed, top_limit)),
        recent_events=tuple(
            get_recent_events(
                windowed,
                recent_limit if recent_limit is not None else config.recent_limit,
            )
        ),
        device_breakdown=get_device_breakdown(windowed),
        # Trend slices are independent of the caller's window
        visitor_trend=get_visitor_trend(
            events,
            now,
            config.trend_slice_minutes,
            config.trend_threshold,
        ),
    )


# --- Component Entry Points ---


class _SystemTime:
    def now_utc(self) -> datetime:
        return datetime.now(UTC)


def create_event_buffer(config: RealtimeConfig | None = None) -> InMemoryEventBuffer:
    config = config or DEFAULT_CONFIG
    return InMemoryEventBuffer(retention_minutes=config.retention_minutes)


def run_get_realtime(
    inp: GetRealtimeInput,
    *,
    buffer: EventBufferPort,
    time_port: TimePort | None = None,
    config: RealtimeConfig | None = None,
) -> RealtimeOutput:
    """
    Live snapshot for one site.

    Validation failures come back in the output; nothing is raised.
    """
    config = config or DEFAULT_CONFIG
    errors = validate_realtime_request(inp.site_id, inp.time_window_minutes, config)
    if errors:
        return RealtimeOutput(snapshot=None, errors=errors, success=False)

    assert inp.site_id is not None
    now = (time_port or _SystemTime()).now_utc()
    window = (
        inp.time_window_minutes
        if inp.time_window_minutes is not None
        else config.default_window_minutes
    )

    snapshot = build_snapshot(
        inp.site_id,
        buffer.snapshot(inp.site_id),
        now,
        window,
        config=config,
        limit=inp.limit,
        recent_limit=inp.recent_limit,
    )
    return RealtimeOutput(snapshot=snapshot)


def run(inp: GetRealtimeInput, **kwargs: object) -> RealtimeOutput:
    """Main component entry point."""
    return run_get_realtime(inp, **kwargs)  # type: ignore[arg-type]
