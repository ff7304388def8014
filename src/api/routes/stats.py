"""
Owner historical stats endpoint.
"""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.api.deps import get_owned_site, get_stats_engine
from src.api.schemas import ErrorResponse, StatsResponse, error_items
from src.components.stats import GetStatsInput, StatsEngine, run_get_stats

router = APIRouter()


@router.get(
    "/{site_id}",
    response_model=StatsResponse,
    responses={400: {"model": ErrorResponse}},
)
def get_stats(
    site_id: str = Depends(get_owned_site),
    start: date | None = Query(None, description="First day (inclusive)"),
    end: date | None = Query(None, description="Last day (inclusive)"),
    period: str | None = Query(None, description="24h, 7d, 30d, 90d or 365d"),
    dimensions: list[str] | None = Query(None),
    engine: StatsEngine = Depends(get_stats_engine),
) -> StatsResponse:
    """Summary for `start..end` or a period preset ending today."""
    result = run_get_stats(
        GetStatsInput(
            site_id=site_id,
            start_date=start,
            end_date=end,
            period=period,
            dimensions=tuple(dimensions) if dimensions else None,
        ),
        engine=engine,
    )
    if not result.success or result.summary is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"ok": False, "errors": error_items(result.errors)},
        )
    return StatsResponse.model_validate(result.summary)
