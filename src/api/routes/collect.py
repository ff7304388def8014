"""
Public event collection endpoint.

Raw IP and user agent are read from the connection only to derive the
visitor fingerprint and device/browser dimensions; neither is stored,
logged, or echoed back.
"""

from __future__ import annotations

from urllib.parse import urlsplit

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pydantic import BaseModel, ConfigDict, Field

from src.api.deps import get_ingestor
from src.api.schemas import CollectResponse, ErrorResponse, error_items
from src.components.ingest import EventIngestor, IngestEventInput, RequestMetadata, run_ingest

router = APIRouter()


class CollectRequest(BaseModel):
    """Tracker payload. Unknown fields are kept so they can be rejected by name."""

    site_id: str | None = Field(None, description="Site identifier")
    type: str | None = Field(None, description="pageview or custom")

    model_config = ConfigDict(extra="allow")


def get_client_ip(request: Request) -> str | None:
    """First X-Forwarded-For hop, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.client.host if request.client else None


def get_request_metadata(request: Request) -> RequestMetadata:
    origin = request.headers.get("origin")
    return RequestMetadata(
        ip=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
        host=urlsplit(origin).hostname if origin else None,
        country=request.headers.get("cf-ipcountry"),
    )


@router.post(
    "/event",
    response_model=CollectResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={
        200: {"model": CollectResponse, "description": "Duplicate within the dedup window"},
        400: {"model": ErrorResponse},
    },
)
def collect_event(
    request: Request,
    response: Response,
    body: CollectRequest,
    ingestor: EventIngestor = Depends(get_ingestor),
) -> CollectResponse:
    """
    Ingest one tracker event.

    202 when accepted, 200 when it was a duplicate, 400 when rejected.
    """
    payload = body.model_dump(exclude_none=True)
    site_id = payload.pop("site_id", None)

    result = run_ingest(
        IngestEventInput(
            site_id=site_id,
            payload=payload,
            metadata=get_request_metadata(request),
        ),
        ingestor=ingestor,
    )

    if result.status == "rejected":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "ok": False,
                "reason": result.reason,
                "errors": error_items(result.errors),
            },
        )

    if result.status == "duplicate":
        response.status_code = status.HTTP_200_OK
        return CollectResponse(status="duplicate")

    return CollectResponse(status="accepted")
