"""
Imports component port definitions.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from src.components.stats.models import ImportedDailyStat

from .models import CredentialCheck, DateRange, ExternalRow, ImportJob


class ImportJobRepoPort(Protocol):
    """Durable import job storage."""

    def get(self, job_id: UUID) -> ImportJob | None:
        ...

    def create_if_no_active(self, job: ImportJob) -> bool:
        """
        Insert the job unless the site already has a pending/in_progress job.

        Check and insert are atomic.
        """
        ...

    def compare_and_set(self, job: ImportJob, expected_status: str) -> bool:
        """Store job only if the stored status still equals expected_status."""
        ...

    def find_active(self, site_id: str) -> ImportJob | None:
        ...

    def list_for_site(self, site_id: str) -> list[ImportJob]:
        ...

    def delete_finished_before(self, cutoff: datetime) -> int:
        """Delete terminal jobs finished before cutoff. Returns count."""
        ...


class ImportSourcePort(Protocol):
    """External analytics export. May be slow or fail with UpstreamError."""

    def count_rows(self, property_id: str, date_range: DateRange) -> int:
        ...

    def fetch_rows(
        self,
        property_id: str,
        date_range: DateRange,
        offset: int,
        limit: int,
    ) -> list[ExternalRow]:
        ...


class CredentialValidatorPort(Protocol):
    """Validates an already-obtained third-party access credential."""

    def validate(self, credential: str) -> CredentialCheck:
        ...


class ImportedStatsWriterPort(Protocol):
    def add_rows(self, rows: list[ImportedDailyStat]) -> int:
        ...


class TimePort(Protocol):
    """Time provider interface."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        ...
