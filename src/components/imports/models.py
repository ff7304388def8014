"""
Imports component input/output models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Literal
from uuid import UUID

# --- Validation Error ---


@dataclass(frozen=True)
class ImportsValidationError:
    """Imports validation error."""

    code: str
    message: str
    field_name: str | None = None


# --- Job Status Type ---


ImportStatus = Literal["pending", "in_progress", "completed", "failed", "cancelled"]

ACTIVE_STATUSES: frozenset[str] = frozenset({"pending", "in_progress"})
TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed", "cancelled"})


# --- Configuration ---


@dataclass(frozen=True)
class ImportsConfig:
    """Import configuration from rules."""

    batch_size: int = 1000
    max_retries: int = 3
    cleanup_after_days: int = 30
    # Extra external-name -> internal-name entries layered over FIELD_MAP
    field_map: dict[str, str] = field(default_factory=dict)


# --- Job Model ---


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date


@dataclass(frozen=True)
class ImportBatch:
    offset: int
    limit: int


@dataclass(frozen=True)
class ImportJob:
    """Resumable, batched import of an external analytics export."""

    id: UUID
    site_id: str
    source_property_id: str
    date_range: DateRange
    status: ImportStatus
    total_rows: int
    imported_rows: int
    batch_size: int
    current_batch: int
    total_batches: int
    retry_count: int
    max_retries: int
    created_at: datetime
    updated_at: datetime
    account_id: str | None = None
    error: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    failed_at: datetime | None = None
    cancelled_at: datetime | None = None

    @property
    def progress(self) -> int:
        """Percent of rows imported."""
        if self.total_rows <= 0:
            return 100 if self.status == "completed" else 0
        return min(100, round(self.imported_rows / self.total_rows * 100))

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def finished_at(self) -> datetime | None:
        return self.completed_at or self.failed_at or self.cancelled_at


@dataclass(frozen=True)
class CredentialCheck:
    """Result of validating a third-party access credential."""

    valid: bool
    account_id: str | None = None


# --- Input Models ---


@dataclass(frozen=True)
class StartImportInput:
    site_id: str | None
    credential: str | None
    property_id: str | None
    start_date: date | None
    end_date: date | None

    def __repr__(self) -> str:
        return (
            f"StartImportInput(site_id={self.site_id!r}, property_id={self.property_id!r}, "
            f"start_date={self.start_date!r}, end_date={self.end_date!r})"
        )


# --- Output Models ---


@dataclass(frozen=True)
class ImportJobOutput:
    job: ImportJob | None
    errors: list[ImportsValidationError] = field(default_factory=list)
    success: bool = True


# Raw external row as delivered by an export source
ExternalRow = dict[str, Any]
