from datetime import date, datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ORMModel(BaseModel):
    """Response model built from component dataclasses."""

    model_config = ConfigDict(from_attributes=True)


# --- Errors ---
class ErrorItem(BaseModel):
    code: str
    message: str
    field: str | None = None


class ErrorResponse(BaseModel):
    ok: bool = False
    errors: list[ErrorItem]


def error_items(errors: list[Any]) -> list[dict[str, Any]]:
    """Component validation errors as JSON-ready dicts."""
    return [{"code": e.code, "message": e.message, "field": e.field_name} for e in errors]


# --- Collect ---
class CollectResponse(BaseModel):
    ok: bool = True
    status: Literal["accepted", "duplicate"]


# --- Realtime ---
class PageVisitorsModel(ORMModel):
    path: str
    visitors: int


class CountryVisitorsModel(ORMModel):
    country: str
    visitors: int


class RecentEventModel(ORMModel):
    timestamp: datetime
    path: str
    event_type: str
    name: str | None = None
    country: str | None = None
    device: str | None = None


class RealtimeResponse(ORMModel):
    site_id: str
    window_minutes: float
    generated_at: datetime
    active_visitors: int
    page_views: int
    top_pages: list[PageVisitorsModel]
    top_countries: list[CountryVisitorsModel]
    recent_events: list[RecentEventModel]
    device_breakdown: dict[str, int]
    visitor_trend: Literal["increasing", "decreasing", "stable"]


# --- Stats ---
class BreakdownRowModel(ORMModel):
    value: str
    count: int
    visitors: int


class DailyRowModel(ORMModel):
    date: date
    pageviews: int
    visitors: int


class StatsResponse(ORMModel):
    site_id: str
    start_date: date
    end_date: date
    unique_visitors: int
    pageviews: int
    sessions: int
    bounce_rate: float
    avg_session_duration: float
    breakdowns: dict[str, list[BreakdownRowModel]]
    daily: list[DailyRowModel]


# --- Shares ---
class CreateShareRequest(BaseModel):
    site_id: str = Field(..., min_length=1)
    expires_in: str | None = Field(None, description="1d, 7d, 30d, 90d; omit for no expiry")
    allowed_periods: list[str] | None = None
    password: str | None = None

    def __repr__(self) -> str:
        return f"CreateShareRequest(site_id={self.site_id!r}, expires_in={self.expires_in!r})"


class ShareResponse(ORMModel):
    token: str
    site_id: str
    created_at: datetime
    expires_at: datetime | None = None
    allowed_periods: list[str]
    has_password: bool


class PublicStatsResponse(BaseModel):
    period: str
    allowed_periods: list[str]
    stats: StatsResponse


# --- Imports ---
class StartImportRequest(BaseModel):
    site_id: str = Field(..., min_length=1)
    credential: str | None = Field(None, description="Validated third-party access token")
    property_id: str | None = None
    start_date: date | None = None
    end_date: date | None = None

    def __repr__(self) -> str:
        return f"StartImportRequest(site_id={self.site_id!r}, property_id={self.property_id!r})"


class ImportJobResponse(BaseModel):
    id: UUID
    site_id: str
    status: str
    total_rows: int
    imported_rows: int
    current_batch: int
    total_batches: int
    progress: int
    retry_count: int
    max_retries: int
    error: str | None = None
    start_date: date
    end_date: date
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    failed_at: datetime | None = None
    cancelled_at: datetime | None = None

    @classmethod
    def from_job(cls, job: Any) -> "ImportJobResponse":
        return cls(
            id=job.id,
            site_id=job.site_id,
            status=job.status,
            total_rows=job.total_rows,
            imported_rows=job.imported_rows,
            current_batch=job.current_batch,
            total_batches=job.total_batches,
            progress=job.progress,
            retry_count=job.retry_count,
            max_retries=job.max_retries,
            error=job.error,
            start_date=job.date_range.start,
            end_date=job.date_range.end,
            created_at=job.created_at,
            updated_at=job.updated_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
            failed_at=job.failed_at,
            cancelled_at=job.cancelled_at,
        )
