"""
Owner share management endpoints.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status

from src.adapters.sqlite.repos import SQLiteSiteOwnerRepo
from src.api.deps import (
    Owner,
    ensure_site_owner,
    get_current_owner,
    get_owned_site,
    get_share_governor,
    get_site_owner_repo,
)
from src.api.schemas import CreateShareRequest, ErrorResponse, ShareResponse, error_items
from src.components.shares import CreateShareInput, ShareGovernor, run_create_share, to_view

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "",
    response_model=ShareResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
def create_share(
    body: CreateShareRequest,
    owner: Owner = Depends(get_current_owner),
    owners: SQLiteSiteOwnerRepo = Depends(get_site_owner_repo),
    governor: ShareGovernor = Depends(get_share_governor),
) -> ShareResponse:
    """Create a share token for one of the owner's sites."""
    ensure_site_owner(body.site_id, owner, owners)

    result = run_create_share(
        CreateShareInput(
            site_id=body.site_id,
            owner_id=owner.id,
            expires_in=body.expires_in,
            allowed_periods=tuple(body.allowed_periods) if body.allowed_periods else None,
            password=body.password,
        ),
        governor=governor,
    )
    if not result.success or result.share is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"ok": False, "errors": error_items(result.errors)},
        )

    logger.info("Share %s... created for site %s", result.share.token[:8], body.site_id)
    return ShareResponse.model_validate(result.share)


@router.get("", response_model=list[ShareResponse])
def list_shares(
    site_id: str = Depends(get_owned_site),
    owner: Owner = Depends(get_current_owner),
    governor: ShareGovernor = Depends(get_share_governor),
) -> list[ShareResponse]:
    """Active shares for `site_id`, newest first."""
    return [
        ShareResponse.model_validate(to_view(share))
        for share in governor.list_shares(site_id, owner.id)
    ]


@router.delete("/{token}", status_code=status.HTTP_204_NO_CONTENT)
def revoke_share(
    token: str,
    owner: Owner = Depends(get_current_owner),
    governor: ShareGovernor = Depends(get_share_governor),
) -> Response:
    """Revoke a share. Unknown and not-owned tokens are both 404."""
    governor.revoke(token, owner.id)
    logger.info("Share %s... revoked", token[:8])
    return Response(status_code=status.HTTP_204_NO_CONTENT)
