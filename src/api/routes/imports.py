"""
Owner bulk import endpoints.

Starting or retrying a job returns immediately; the batch loop runs on
FastAPI background tasks and clients poll GET /{id} for progress.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status

from src.adapters.sqlite.repos import SQLiteSiteOwnerRepo
from src.api.deps import (
    Owner,
    ensure_site_owner,
    get_current_owner,
    get_import_coordinator,
    get_owned_site,
    get_site_owner_repo,
)
from src.api.schemas import ErrorResponse, ImportJobResponse, StartImportRequest, error_items
from src.components.imports import (
    ImportCoordinator,
    ImportJob,
    StartImportInput,
    run_cancel_import,
    run_get_import_status,
    run_import_job,
    run_retry_import,
    run_start_import,
)
from src.core.errors import NotFoundError

router = APIRouter()


def _owned_job(
    job_id: UUID,
    owner: Owner,
    owners: SQLiteSiteOwnerRepo,
    coordinator: ImportCoordinator,
) -> ImportJob:
    job = run_get_import_status(job_id, coordinator=coordinator).job
    assert job is not None
    # Foreign jobs look missing so job ids do not leak across sites
    if not owners.is_owner(job.site_id, owner.id):
        raise NotFoundError("Import job not found", code="import_not_found")
    return job


@router.post(
    "",
    response_model=ImportJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def start_import(
    body: StartImportRequest,
    background_tasks: BackgroundTasks,
    owner: Owner = Depends(get_current_owner),
    owners: SQLiteSiteOwnerRepo = Depends(get_site_owner_repo),
    coordinator: ImportCoordinator = Depends(get_import_coordinator),
) -> ImportJobResponse:
    ensure_site_owner(body.site_id, owner, owners)

    result = run_start_import(
        StartImportInput(
            site_id=body.site_id,
            credential=body.credential,
            property_id=body.property_id,
            start_date=body.start_date,
            end_date=body.end_date,
        ),
        coordinator=coordinator,
    )
    if not result.success or result.job is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"ok": False, "errors": error_items(result.errors)},
        )

    background_tasks.add_task(run_import_job, result.job.id, coordinator=coordinator)
    return ImportJobResponse.from_job(result.job)


@router.get("", response_model=list[ImportJobResponse])
def list_imports(
    site_id: str = Depends(get_owned_site),
    coordinator: ImportCoordinator = Depends(get_import_coordinator),
) -> list[ImportJobResponse]:
    return [ImportJobResponse.from_job(job) for job in coordinator.list_jobs(site_id)]


@router.get("/{job_id}", response_model=ImportJobResponse)
def get_import(
    job_id: UUID,
    owner: Owner = Depends(get_current_owner),
    owners: SQLiteSiteOwnerRepo = Depends(get_site_owner_repo),
    coordinator: ImportCoordinator = Depends(get_import_coordinator),
) -> ImportJobResponse:
    return ImportJobResponse.from_job(_owned_job(job_id, owner, owners, coordinator))


@router.delete("/{job_id}", response_model=ImportJobResponse)
def cancel_import(
    job_id: UUID,
    owner: Owner = Depends(get_current_owner),
    owners: SQLiteSiteOwnerRepo = Depends(get_site_owner_repo),
    coordinator: ImportCoordinator = Depends(get_import_coordinator),
) -> ImportJobResponse:
    """Cancel a pending or running job. Completed or cancelled jobs are 409."""
    _owned_job(job_id, owner, owners, coordinator)
    result = run_cancel_import(job_id, coordinator=coordinator)
    assert result.job is not None
    return ImportJobResponse.from_job(result.job)


@router.post(
    "/{job_id}/retry",
    response_model=ImportJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def retry_import(
    job_id: UUID,
    background_tasks: BackgroundTasks,
    owner: Owner = Depends(get_current_owner),
    owners: SQLiteSiteOwnerRepo = Depends(get_site_owner_repo),
    coordinator: ImportCoordinator = Depends(get_import_coordinator),
) -> ImportJobResponse:
    """Resume a failed job from its last checkpoint."""
    _owned_job(job_id, owner, owners, coordinator)
    result = run_retry_import(job_id, coordinator=coordinator)
    assert result.job is not None
    background_tasks.add_task(run_import_job, job_id, coordinator=coordinator)
    return ImportJobResponse.from_job(result.job)
