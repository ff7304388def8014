"""
In-memory import adapters for testing/dev.
"""

from __future__ import annotations

from datetime import datetime
from threading import Lock
from uuid import UUID

from .models import TERMINAL_STATUSES, CredentialCheck, DateRange, ExternalRow, ImportJob


class InMemoryImportJobRepo:
    def __init__(self) -> None:
        self._jobs: dict[UUID, ImportJob] = {}
        self._lock = Lock()

    def get(self, job_id: UUID) -> ImportJob | None:
        with self._lock:
            return self._jobs.get(job_id)

    def create_if_no_active(self, job: ImportJob) -> bool:
        with self._lock:
            if any(j.site_id == job.site_id and j.is_active for j in self._jobs.values()):
                return False
            self._jobs[job.id] = job
            return True

    def compare_and_set(self, job: ImportJob, expected_status: str) -> bool:
        with self._lock:
            current = self._jobs.get(job.id)
            if current is None or current.status != expected_status:
                return False
            self._jobs[job.id] = job
            return True

    def find_active(self, site_id: str) -> ImportJob | None:
        with self._lock:
            for job in self._jobs.values():
                if job.site_id == site_id and job.is_active:
                    return job
            return None

    def list_for_site(self, site_id: str) -> list[ImportJob]:
        with self._lock:
            return [j for j in self._jobs.values() if j.site_id == site_id]

    def delete_finished_before(self, cutoff: datetime) -> int:
        with self._lock:
            stale = [
                job_id
                for job_id, job in self._jobs.items()
                if job.status in TERMINAL_STATUSES
                and (job.finished_at or job.updated_at) < cutoff
            ]
            for job_id in stale:
                del self._jobs[job_id]
            return len(stale)


class InMemoryImportSource:
    """Export rows held in memory, keyed by property id."""

    def __init__(self, rows: dict[str, list[ExternalRow]] | None = None) -> None:
        self._rows = rows or {}

    def add_property(self, property_id: str, rows: list[ExternalRow]) -> None:
        self._rows[property_id] = list(rows)

    def count_rows(self, property_id: str, date_range: DateRange) -> int:
        return len(self._rows.get(property_id, []))

    def fetch_rows(
        self,
        property_id: str,
        date_range: DateRange,
        offset: int,
        limit: int,
    ) -> list[ExternalRow]:
        return self._rows.get(property_id, [])[offset : offset + limit]


class StaticCredentialValidator:
    """Accepts a fixed set of credentials, each bound to an account id."""

    def __init__(self, accounts: dict[str, str] | None = None) -> None:
        self._accounts = accounts or {}

    def validate(self, credential: str) -> CredentialCheck:
        account_id = self._accounts.get(credential)
        return CredentialCheck(valid=account_id is not None, account_id=account_id)
