"""
Anonymous stats view through a share token.

Expired, revoked, and unknown tokens are all 404 so a caller cannot enumerate
which tokens once existed. Period and password failures are 403.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from src.api.deps import get_share_governor, get_stats_engine
from src.api.schemas import ErrorResponse, PublicStatsResponse, StatsResponse, error_items
from src.components.shares import ShareGovernor, ValidateShareInput, run_public_stats
from src.components.stats import StatsEngine

router = APIRouter()

_NOT_FOUND_REASONS = {"not_found", "expired"}


@router.get(
    "/stats",
    response_model=PublicStatsResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def get_public_stats(
    token: str = Query(..., min_length=1),
    period: str | None = Query(None),
    x_share_password: str | None = Header(None),
    governor: ShareGovernor = Depends(get_share_governor),
    engine: StatsEngine = Depends(get_stats_engine),
) -> PublicStatsResponse:
    result = run_public_stats(
        ValidateShareInput(token=token, period=period, password=x_share_password),
        governor=governor,
        engine=engine,
    )
    if not result.success or result.summary is None or result.period is None:
        code = (
            status.HTTP_404_NOT_FOUND
            if result.reason in _NOT_FOUND_REASONS
            else status.HTTP_403_FORBIDDEN
        )
        raise HTTPException(
            status_code=code,
            detail={"ok": False, "reason": result.reason, "errors": error_items(result.errors)},
        )

    return PublicStatsResponse(
        period=result.period,
        allowed_periods=list(result.allowed_periods),
        stats=StatsResponse.model_validate(result.summary),
    )
