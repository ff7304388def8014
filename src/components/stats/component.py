"""
Stats component - Historical summaries over closed date ranges.

Invariants:
- Read-only over event storage; identical arguments give identical results
- start_date <= end_date; both days inclusive in the reporting timezone
- Every calendar day in range has a daily row (zero-filled)
- Folds are commutative; event order never matters
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from src.components.ingest.models import Event
from src.core.errors import ConfigurationError, ValidationError

from .models import (
    ALL_DIMENSIONS,
    PERIOD_DAYS,
    BreakdownRow,
    DailyRow,
    GetStatsInput,
    ImportedDailyStat,
    StatsConfig,
    StatsOutput,
    StatsSummary,
    StatsValidationError,
)
from .ports import EventReadPort, ImportedStatsPort, TimePort

DEFAULT_CONFIG = StatsConfig()

# Label for events with no value in a dimension
MISSING_VALUES: dict[str, str] = {
    "pages": "/",
    "referrers": "direct",
    "devices": "unknown",
    "browsers": "Other",
    "countries": "Unknown",
}


# --- Date Ranges ---


def resolve_period(period: str, today: date) -> tuple[date, date]:
    """Closed [start, end] range of N calendar days ending today."""
    days = PERIOD_DAYS.get(period)
    if days is None:
        raise ValidationError(f"Unknown period '{period}'", code="invalid_period")
    return today - timedelta(days=days - 1), today


def iter_days(start: date, end: date) -> Iterable[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def day_bounds(start: date, end: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """UTC half-open [start 00:00, end+1 00:00) in the reporting timezone."""
    lower = datetime.combine(start, time.min, tzinfo=tz).astimezone(UTC)
    upper = datetime.combine(end + timedelta(days=1), time.min, tzinfo=tz).astimezone(UTC)
    return lower, upper


def local_day(timestamp: datetime, tz: ZoneInfo) -> date:
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=UTC)
    return timestamp.astimezone(tz).date()


# --- Validation ---


def validate_stats_request(
    inp: GetStatsInput,
    config: StatsConfig = DEFAULT_CONFIG,
) -> list[StatsValidationError]:
    errors: list[StatsValidationError] = []

    if not inp.site_id or not inp.site_id.strip():
        errors.append(
            StatsValidationError(
                code="site_id_required",
                message="Site ID is required",
                field_name="site_id",
            )
        )

    if inp.period is not None:
        if inp.period not in PERIOD_DAYS:
            errors.append(
                StatsValidationError(
                    code="invalid_period",
                    message=f"Period must be one of: {', '.join(PERIOD_DAYS)}",
                    field_name="period",
                )
            )
    elif inp.start_date is None or inp.end_date is None:
        errors.append(
            StatsValidationError(
                code="date_range_required",
                message="Start and end dates are required",
                field_name="start_date" if inp.start_date is None else "end_date",
            )
        )
    elif inp.start_date > inp.end_date:
        errors.append(
            StatsValidationError(
                code="invalid_date_range",
                message="Start date must not be after end date",
                field_name="start_date",
            )
        )
    elif (inp.end_date - inp.start_date).days + 1 > config.max_range_days:
        errors.append(
            StatsValidationError(
                code="date_range_too_large",
                message=f"Date range may span at most {config.max_range_days} days",
                field_name="end_date",
            )
        )

    for dimension in inp.dimensions or ():
        if dimension not in ALL_DIMENSIONS:
            errors.append(
                StatsValidationError(
                    code="invalid_dimension",
                    message=f"Dimension must be one of: {', '.join(ALL_DIMENSIONS)}",
                    field_name="dimensions",
                )
            )
            break

    return errors


# --- Pure Functions (Functional Core) ---


@dataclass
class _Tally:
    """Mutable fold state for one dimension value."""

    count: int = 0
    visitors: set[str] = field(default_factory=set)
    extra_visitors: int = 0

    def row(self, value: str) -> BreakdownRow:
        return BreakdownRow(
            value=value,
            count=self.count,
            visitors=len(self.visitors) + self.extra_visitors,
        )


def _dimension_value(event: Event, dimension: str) -> str | None:
    if dimension == "pages":
        return event.path
    if dimension == "referrers":
        return event.referrer
    if dimension == "devices":
        return event.device
    if dimension == "browsers":
        return event.browser
    return event.country


def _imported_value(row: ImportedDailyStat, dimension: str) -> str | None:
    if dimension == "pages":
        return row.path
    if dimension == "referrers":
        return row.referrer
    if dimension == "devices":
        return row.device
    if dimension == "countries":
        return row.country
    # Exports carry no browser dimension
    return None


def compute_breakdown(
    events: Sequence[Event],
    dimension: str,
    imported: Sequence[ImportedDailyStat] = (),
    limit: int = 10,
) -> list[BreakdownRow]:
    """
    Pageview count plus distinct visitors per value of one dimension.

    Sorted by count, then visitors, descending; value ascending on ties.
    """
    tallies: dict[str, _Tally] = {}
    missing = MISSING_VALUES[dimension]

    for event in events:
        value = _dimension_value(event, dimension) or missing
        tally = tallies.setdefault(value, _Tally())
        if event.type == "pageview":
            tally.count += 1
        tally.visitors.add(event.fingerprint)

    for row in imported:
        value = _imported_value(row, dimension)
        if value is None:
            continue
        tally = tallies.setdefault(value, _Tally())
        tally.count += row.pageviews
        tally.extra_visitors += row.visitors

    rows = [tally.row(value) for value, tally in tallies.items()]
    rows.sort(key=lambda r: (-r.count, -r.visitors, r.value))
    return rows[: max(0, limit)]


def compute_daily_series(
    events: Sequence[Event],
    start: date,
    end: date,
    tz: ZoneInfo,
    imported: Sequence[ImportedDailyStat] = (),
) -> list[DailyRow]:
    """One row per calendar day in range, zero-filled."""
    pageviews: dict[date, int] = {day: 0 for day in iter_days(start, end)}
    visitors: dict[date, set[str]] = {day: set() for day in pageviews}
    extra_visitors: dict[date, int] = {day: 0 for day in pageviews}

    for event in events:
        day = local_day(event.timestamp, tz)
        if day not in pageviews:
            continue
        if event.type == "pageview":
            pageviews[day] += 1
        visitors[day].add(event.fingerprint)

    for row in imported:
        if row.date in pageviews:
            pageviews[row.date] += row.pageviews
            extra_visitors[row.date] += row.visitors

    return [
        DailyRow(
            date=day,
            pageviews=pageviews[day],
            visitors=len(visitors[day]) + extra_visitors[day],
        )
        for day in pageviews
    ]


def compute_session_metrics(
    events: Iterable[Event],
    imported: Sequence[ImportedDailyStat] = (),
) -> tuple[int, float, float]:
    """
    (sessions, bounce_rate, avg_session_duration_seconds).

    Bounce: a session with exactly one pageview. Duration: last - first
    event time; single-event sessions contribute 0 to the mean.
    """
    firsts: dict[str, datetime] = {}
    lasts: dict[str, datetime] = {}
    session_pageviews: dict[str, int] = {}

    for event in events:
        key = event.session_key
        if key not in firsts or event.timestamp < firsts[key]:
            firsts[key] = event.timestamp
        if key not in lasts or event.timestamp > lasts[key]:
            lasts[key] = event.timestamp
        session_pageviews[key] = session_pageviews.get(key, 0) + (
            1 if event.type == "pageview" else 0
        )

    sessions = len(firsts)
    bounced = float(sum(1 for count in session_pageviews.values() if count == 1))
    duration = sum((lasts[k] - firsts[k]).total_seconds() for k in firsts)

    for row in imported:
        sessions_in_row = row.sessions or row.visitors
        sessions += sessions_in_row
        bounced += row.bounce_rate * sessions_in_row
        duration += row.avg_session_duration * sessions_in_row

    if sessions == 0:
        return 0, 0.0, 0.0
    return sessions, round(bounced / sessions, 4), round(duration / sessions, 2)


def compute_stats(
    site_id: str,
    start_date: date,
    end_date: date,
    events: Sequence[Event],
    imported: Sequence[ImportedDailyStat] = (),
    dimensions: Sequence[str] | None = None,
    config: StatsConfig = DEFAULT_CONFIG,
) -> StatsSummary:
    """
    Fold events and imported rows into a summary.

    Events outside [start_date, end_date] are ignored.
    """
    if start_date > end_date:
        raise ValidationError("Start date must not be after end date", code="invalid_date_range")

    tz = reporting_zone(config)
    in_range = [e for e in events if start_date <= local_day(e.timestamp, tz) <= end_date]
    rows = [r for r in imported if start_date <= r.date <= end_date]

    sessions, bounce_rate, avg_duration = compute_session_metrics(in_range, rows)
    wanted = tuple(dimensions) if dimensions else ALL_DIMENSIONS

    return StatsSummary(
        site_id=site_id,
        start_date=start_date,
        end_date=end_date,
        unique_visitors=len({e.fingerprint for e in in_range}) + sum(r.visitors for r in rows),
        pageviews=sum(1 for e in in_range if e.type == "pageview") + sum(r.pageviews for r in rows),
        sessions=sessions,
        bounce_rate=bounce_rate,
        avg_session_duration=avg_duration,
        breakdowns={
            dimension: tuple(
                compute_breakdown(in_range, dimension, rows, config.breakdown_limit)
            )
            for dimension in wanted
        },
        daily=tuple(compute_daily_series(in_range, start_date, end_date, tz, rows)),
    )


def reporting_zone(config: StatsConfig = DEFAULT_CONFIG) -> ZoneInfo:
    try:
        return ZoneInfo(config.reporting_timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigurationError(
            f"Unknown reporting timezone: {config.reporting_timezone}",
            code="invalid_timezone",
        ) from e


# --- Engine (Shell) ---


class _SystemTime:
    def now_utc(self) -> datetime:
        return datetime.now(UTC)


class NoImportedStats:
    """Imported stats port with no rows."""

    def list_imported(
        self, site_id: str, start_date: date, end_date: date
    ) -> list[ImportedDailyStat]:
        return []


class StatsEngine:
    """
    Historical stats over durable storage.

    Read-only: results may be cached by the caller keyed on
    (site_id, start_date, end_date, dimensions).
    """

    def __init__(
        self,
        events: EventReadPort,
        imported: ImportedStatsPort | None = None,
        time_port: TimePort | None = None,
        config: StatsConfig | None = None,
    ) -> None:
        self._events = events
        self._imported = imported or NoImportedStats()
        self._time = time_port or _SystemTime()
        self._config = config or DEFAULT_CONFIG

    @property
    def config(self) -> StatsConfig:
        return self._config

    def today(self) -> date:
        return local_day(self._time.now_utc(), reporting_zone(self._config))

    def period_range(self, period: str) -> tuple[date, date]:
        return resolve_period(period, self.today())

    def summary(
        self,
        site_id: str,
        start_date: date,
        end_date: date,
        dimensions: Sequence[str] | None = None,
    ) -> StatsSummary:
        """Raises ValidationError on a bad range; store failures propagate."""
        errors = validate_stats_request(
            GetStatsInput(
                site_id=site_id,
                start_date=start_date,
                end_date=end_date,
                dimensions=tuple(dimensions) if dimensions else None,
            ),
            self._config,
        )
        if errors:
            raise ValidationError(errors[0].message, code=errors[0].code)

        lower, upper = day_bounds(start_date, end_date, reporting_zone(self._config))
        events = self._events.list_events(site_id, lower, upper)
        imported = self._imported.list_imported(site_id, start_date, end_date)
        return compute_stats(
            site_id,
            start_date,
            end_date,
            events,
            imported,
            dimensions,
            self._config,
        )

    def period_summary(
        self,
        site_id: str,
        period: str,
        dimensions: Sequence[str] | None = None,
    ) -> StatsSummary:
        start_date, end_date = self.period_range(period)
        return self.summary(site_id, start_date, end_date, dimensions)


def create_stats_engine(
    events: EventReadPort,
    imported: ImportedStatsPort | None = None,
    time_port: TimePort | None = None,
    config: StatsConfig | None = None,
) -> StatsEngine:
    """Create a StatsEngine."""
    return StatsEngine(events=events, imported=imported, time_port=time_port, config=config)


# --- Component Entry Points ---


def run_get_stats(inp: GetStatsInput, *, engine: StatsEngine) -> StatsOutput:
    """
    Historical summary for a date range or period preset.

    Validation failures come back in the output.
    """
    errors = validate_stats_request(inp, engine.config)
    if errors:
        return StatsOutput(summary=None, errors=errors, success=False)

    assert inp.site_id is not None
    if inp.period is not None:
        summary = engine.period_summary(inp.site_id, inp.period, inp.dimensions)
    else:
        assert inp.start_date is not None and inp.end_date is not None
        summary = engine.summary(inp.site_id, inp.start_date, inp.end_date, inp.dimensions)
    return StatsOutput(summary=summary)


def run(inp: GetStatsInput, *, engine: StatsEngine) -> StatsOutput:
    """Main component entry point."""
    return run_get_stats(inp, engine=engine)
