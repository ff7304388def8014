"""
Owner realtime dashboard endpoint.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.adapters.clock import SystemClock
from src.api.deps import get_clock, get_event_buffer, get_owned_site, get_rules, realtime_config
from src.api.schemas import ErrorResponse, RealtimeResponse, error_items
from src.components.realtime import GetRealtimeInput, InMemoryEventBuffer, run_get_realtime
from src.rules.models import Rules

router = APIRouter()


@router.get(
    "/{site_id}",
    response_model=RealtimeResponse,
    responses={400: {"model": ErrorResponse}},
)
def get_realtime(
    site_id: str = Depends(get_owned_site),
    window: float | None = Query(None, description="Look-back window in minutes (0, 1440]"),
    limit: int | None = Query(None, ge=1, le=100),
    buffer: InMemoryEventBuffer = Depends(get_event_buffer),
    clock: SystemClock = Depends(get_clock),
    rules: Rules = Depends(get_rules),
) -> RealtimeResponse:
    """Live snapshot over the last `window` minutes."""
    result = run_get_realtime(
        GetRealtimeInput(site_id=site_id, time_window_minutes=window, limit=limit),
        buffer=buffer,
        time_port=clock,
        config=realtime_config(rules),
    )
    if not result.success or result.snapshot is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"ok": False, "errors": error_items(result.errors)},
        )
    return RealtimeResponse.model_validate(result.snapshot)
