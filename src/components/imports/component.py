"""
Imports component - Resumable bulk import of external analytics exports.

State machine:
    pending -> in_progress | failed | cancelled
    in_progress -> completed | failed | cancelled
    failed -> in_progress (retry, bounded by max_retries) | cancelled
    completed, cancelled -> (terminal)

Invariants:
- At most one pending/in_progress job per site
- Cancellation is cooperative: the batch loop re-reads the job every batch
- Failure keeps imported_rows so a retry resumes from the checkpoint
- Every external field default lives in map_external_row
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import UTC, date, datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

from src.components.stats.models import ImportedDailyStat
from src.core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError

from .models import (
    CredentialCheck,
    DateRange,
    ExternalRow,
    ImportBatch,
    ImportJob,
    ImportJobOutput,
    ImportsConfig,
    ImportStatus,
    ImportsValidationError,
    StartImportInput,
)
from .ports import (
    CredentialValidatorPort,
    ImportedStatsWriterPort,
    ImportJobRepoPort,
    ImportSourcePort,
    TimePort,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = ImportsConfig()

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"in_progress", "failed", "cancelled"}),
    "in_progress": frozenset({"completed", "failed", "cancelled"}),
    "failed": frozenset({"in_progress", "cancelled"}),
    "completed": frozenset(),
    "cancelled": frozenset(),
}

# External field name -> internal field name. GA4, Universal Analytics, and
# already-normalised names.
FIELD_MAP: dict[str, str] = {
    "date": "date",
    "pagePath": "path",
    "screenPageViews": "pageviews",
    "sessions": "sessions",
    "totalUsers": "visitors",
    "activeUsers": "visitors",
    "bounceRate": "bounce_rate",
    "averageSessionDuration": "avg_session_duration",
    "sessionSource": "referrer",
    "country": "country",
    "deviceCategory": "device",
    "ga:date": "date",
    "ga:pagePath": "path",
    "ga:pageviews": "pageviews",
    "ga:sessions": "sessions",
    "ga:users": "visitors",
    "ga:bounceRate": "bounce_rate",
    "ga:avgSessionDuration": "avg_session_duration",
    "ga:source": "referrer",
    "ga:country": "country",
    "ga:deviceCategory": "device",
    "path": "path",
    "page": "path",
    "pageviews": "pageviews",
    "visitors": "visitors",
    "users": "visitors",
    "bounce_rate": "bounce_rate",
    "avg_session_duration": "avg_session_duration",
    "avg_duration": "avg_session_duration",
    "referrer": "referrer",
    "source": "referrer",
    "device": "device",
}

# Named defaults for fields an export row leaves out
ROW_DEFAULTS: dict[str, Any] = {
    "path": "/",
    "referrer": "direct",
    "country": "Unknown",
    "device": None,
    "pageviews": 0,
    "visitors": 0,
    "sessions": 0,
    "bounce_rate": 0.0,
    "avg_session_duration": 0.0,
}

# Source labels that mean "no referrer"
DIRECT_SOURCES = frozenset({"(direct)", "direct", "(none)", "(not set)", ""})


# --- Pure Functions (Functional Core) ---


def calculate_import_batches(total_rows: int, batch_size: int) -> list[ImportBatch]:
    """Contiguous [offset, offset+limit) slices covering total_rows."""
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")
    return [
        ImportBatch(offset=offset, limit=min(batch_size, total_rows - offset))
        for offset in range(0, max(0, total_rows), batch_size)
    ]


def calculate_progress(imported_rows: int, total_rows: int) -> int:
    if total_rows <= 0:
        return 0
    return min(100, round(imported_rows / total_rows * 100))


def can_transition(from_status: str, to_status: str) -> bool:
    return to_status in ALLOWED_TRANSITIONS.get(from_status, frozenset())


def normalize_import_date(value: Any) -> date | None:
    """YYYYMMDD, YYYY-MM-DD, or MM/DD/YYYY."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if value is None:
        return None
    text = str(value).strip()
    try:
        if len(text) == 8 and text.isdigit():
            return date(int(text[:4]), int(text[4:6]), int(text[6:]))
        if "/" in text:
            month, day, year = text.split("/")
            return date(int(year), int(month), int(day))
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def _as_int(value: Any) -> int:
    try:
        return int(float(str(value).replace(",", "")))
    except (TypeError, ValueError):
        return 0


def _as_float(value: Any) -> float:
    try:
        return float(str(value).replace(",", "").rstrip("%"))
    except (TypeError, ValueError):
        return 0.0


def map_external_row(
    raw: ExternalRow,
    site_id: str,
    import_id: str | None = None,
    field_map: dict[str, str] | None = None,
) -> ImportedDailyStat | None:
    """
    Normalise one export row into an imported daily stat.

    Missing fields take ROW_DEFAULTS. Rows without a usable date return None.
    field_map replaces FIELD_MAP when given.
    """
    fields: dict[str, Any] = {}
    for key, value in raw.items():
        internal = (field_map or FIELD_MAP).get(key)
        if internal is not None and value is not None and internal not in fields:
            fields[internal] = value

    day = normalize_import_date(fields.get("date"))
    if day is None:
        return None

    merged = {**ROW_DEFAULTS, **{k: v for k, v in fields.items() if k != "date"}}

    bounce_rate = _as_float(merged["bounce_rate"])
    # Universal Analytics reports bounce rate as a percentage
    if bounce_rate > 1:
        bounce_rate /= 100

    referrer = str(merged["referrer"]).strip().lower()
    if referrer in DIRECT_SOURCES:
        referrer = ROW_DEFAULTS["referrer"]

    path = str(merged["path"]) or ROW_DEFAULTS["path"]
    if not path.startswith("/"):
        path = "/" + path

    return ImportedDailyStat(
        site_id=site_id,
        date=day,
        path=path,
        referrer=referrer,
        country=str(merged["country"]) or ROW_DEFAULTS["country"],
        device=str(merged["device"]).lower() if merged["device"] else None,
        pageviews=_as_int(merged["pageviews"]),
        visitors=_as_int(merged["visitors"]),
        sessions=_as_int(merged["sessions"]),
        bounce_rate=min(1.0, max(0.0, bounce_rate)),
        avg_session_duration=max(0.0, _as_float(merged["avg_session_duration"])),
        import_id=import_id,
    )


def validate_start_import(inp: StartImportInput) -> list[ImportsValidationError]:
    errors: list[ImportsValidationError] = []

    if not inp.site_id:
        errors.append(
            ImportsValidationError(
                code="site_id_required",
                message="Site ID is required",
                field_name="site_id",
            )
        )
    if not inp.property_id or not inp.property_id.strip():
        errors.append(
            ImportsValidationError(
                code="property_id_required",
                message="Source property ID is required",
                field_name="property_id",
            )
        )
    if not inp.credential:
        errors.append(
            ImportsValidationError(
                code="credential_required",
                message="Source credential is required",
                field_name="credential",
            )
        )
    if inp.start_date is None or inp.end_date is None:
        errors.append(
            ImportsValidationError(
                code="date_range_required",
                message="Start and end dates are required",
                field_name="date_range",
            )
        )
    elif inp.start_date > inp.end_date:
        errors.append(
            ImportsValidationError(
                code="invalid_date_range",
                message="Start date must not be after end date",
                field_name="date_range",
            )
        )

    return errors


# --- Coordinator (Shell) ---


class _SystemTime:
    def now_utc(self) -> datetime:
        return datetime.now(UTC)


class ImportCoordinator:
    """
    Drives import jobs through their lifecycle.

    The batch loop and the cancel call race only through
    compare_and_set on the job repo.
    """

    def __init__(
        self,
        repo: ImportJobRepoPort,
        source: ImportSourcePort,
        credentials: CredentialValidatorPort,
        writer: ImportedStatsWriterPort,
        time_port: TimePort | None = None,
        config: ImportsConfig | None = None,
    ) -> None:
        self._repo = repo
        self._source = source
        self._credentials = credentials
        self._writer = writer
        self._time = time_port or _SystemTime()
        self._config = config or DEFAULT_CONFIG
        self._field_map = {**FIELD_MAP, **self._config.field_map}

    def _now(self) -> datetime:
        return self._time.now_utc()

    def _require(self, job_id: UUID) -> ImportJob:
        job = self._repo.get(job_id)
        if job is None:
            raise NotFoundError("Import job not found", code="import_not_found")
        return job

    def _transition(self, job: ImportJob, to_status: ImportStatus, **changes: Any) -> ImportJob:
        """Apply a transition if the stored job is still in job.status."""
        if not can_transition(job.status, to_status):
            raise ConflictError.transition(job.status, to_status)
        updated = replace(job, status=to_status, updated_at=self._now(), **changes)
        if not self._repo.compare_and_set(updated, job.status):
            current = self._require(job.id)
            raise ConflictError.transition(current.status, to_status, "job changed concurrently")
        return updated

    # --- Commands ---

    def start_import(self, inp: StartImportInput) -> ImportJob:
        """
        Validate, check the credential, size the export, and create a pending job.

        The batch loop is started separately with run_batches().
        """
        errors = validate_start_import(inp)
        if errors:
            raise ValidationError(errors[0].message, code=errors[0].code)
        assert inp.site_id and inp.property_id and inp.credential
        assert inp.start_date is not None and inp.end_date is not None

        check: CredentialCheck = self._credentials.validate(inp.credential)
        if not check.valid:
            raise AuthorizationError("Source credential is not valid", code="invalid_credential")

        if self._repo.find_active(inp.site_id) is not None:
            raise ConflictError(
                f"An import is already in progress for site {inp.site_id}",
                code="import_in_progress",
            )

        date_range = DateRange(start=inp.start_date, end=inp.end_date)
        total_rows = self._source.count_rows(inp.property_id, date_range)
        batch_size = self._config.batch_size
        now = self._now()

        job = ImportJob(
            id=uuid4(),
            site_id=inp.site_id,
            source_property_id=inp.property_id.strip(),
            date_range=date_range,
            status="pending",
            total_rows=total_rows,
            imported_rows=0,
            batch_size=batch_size,
            current_batch=0,
            total_batches=len(calculate_import_batches(total_rows, batch_size)),
            retry_count=0,
            max_retries=self._config.max_retries,
            account_id=check.account_id,
            created_at=now,
            updated_at=now,
        )
        if not self._repo.create_if_no_active(job):
            raise ConflictError(
                f"An import is already in progress for site {inp.site_id}",
                code="import_in_progress",
            )

        logger.info(
            "Import %s created for site %s: %d rows in %d batches",
            job.id,
            job.site_id,
            job.total_rows,
            job.total_batches,
        )
        return job

    def run_batches(self, job_id: UUID) -> ImportJob:
        """
        Batch loop. Resumes from imported_rows.

        Returns the job in its final observed state. Source or writer
        failures mark the job failed; they are not re-raised.
        """
        job = self._require(job_id)
        if job.status == "pending":
            job = self._transition(job, "in_progress", started_at=self._now())
        elif job.status != "in_progress":
            return job

        batches = calculate_import_batches(job.total_rows, job.batch_size)
        for index, batch in enumerate(batches, start=1):
            if batch.offset + batch.limit <= job.imported_rows:
                continue

            current = self._require(job_id)
            if current.status != "in_progress":
                logger.info("Import %s stopped at batch %d: %s", job_id, index, current.status)
                return current
            job = current

            try:
                rows = self._source.fetch_rows(
                    job.source_property_id,
                    job.date_range,
                    batch.offset,
                    batch.limit,
                )
                mapped = [
                    stat
                    for stat in (
                        map_external_row(r, job.site_id, str(job.id), self._field_map) for r in rows
                    )
                    if stat is not None
                ]
                self._writer.add_rows(mapped)
            except Exception as e:
                logger.exception("Import %s failed at batch %d", job_id, index)
                return self._fail(job, f"Batch {index} failed: {e}")

            progressed = replace(
                job,
                imported_rows=batch.offset + batch.limit,
                current_batch=index,
                updated_at=self._now(),
            )
            if not self._repo.compare_and_set(progressed, "in_progress"):
                # Cancelled between read and write
                return self._require(job_id)
            job = progressed

        try:
            job = self._transition(job, "completed", completed_at=self._now())
        except ConflictError:
            return self._require(job_id)
        logger.info("Import %s completed: %d rows", job.id, job.imported_rows)
        return job

    def _fail(self, job: ImportJob, message: str) -> ImportJob:
        try:
            return self._transition(job, "failed", error=message, failed_at=self._now())
        except ConflictError:
            return self._require(job.id)

    def get_status(self, job_id: UUID) -> ImportJob:
        return self._require(job_id)

    def cancel(self, job_id: UUID) -> ImportJob:
        """
        Cancel a job. Completed or already-cancelled jobs raise ConflictError
        and are left untouched.
        """
        for _ in range(3):
            job = self._require(job_id)
            if job.status == "completed":
                raise ConflictError.transition(job.status, "cancelled", "job already completed")
            if job.status == "cancelled":
                raise ConflictError.transition(job.status, "cancelled", "job already cancelled")
            try:
                cancelled = self._transition(job, "cancelled", cancelled_at=self._now())
            except ConflictError:
                # Lost a race with the batch loop; re-read and decide again
                continue
            logger.info("Import %s cancelled at %d rows", job_id, cancelled.imported_rows)
            return cancelled
        job = self._require(job_id)
        raise ConflictError.transition(job.status, "cancelled", "job changed concurrently")

    def retry_failed_job(self, job_id: UUID) -> ImportJob:
        """failed -> in_progress while retry_count < max_retries."""
        job = self._require(job_id)
        if job.status != "failed":
            raise ConflictError.transition(job.status, "in_progress", "only failed jobs can be retried")
        if job.retry_count >= job.max_retries:
            raise ConflictError(
                "Maximum retry attempts exceeded",
                code="max_retries_exceeded",
                from_status=job.status,
                to_status="in_progress",
            )
        active = self._repo.find_active(job.site_id)
        if active is not None and active.id != job.id:
            raise ConflictError(
                f"Another import is already in progress for site {job.site_id}",
                code="import_in_progress",
            )
        retried = self._transition(
            job,
            "in_progress",
            retry_count=job.retry_count + 1,
            error=None,
            failed_at=None,
        )
        logger.info("Import %s retry %d from row %d", job_id, retried.retry_count, job.imported_rows)
        return retried

    def list_jobs(self, site_id: str) -> list[ImportJob]:
        return sorted(self._repo.list_for_site(site_id), key=lambda j: j.created_at, reverse=True)

    def cleanup_old_jobs(self, days: int | None = None) -> int:
        """Delete terminal jobs that finished more than `days` ago."""
        keep_days = self._config.cleanup_after_days if days is None else days
        removed = self._repo.delete_finished_before(self._now() - timedelta(days=keep_days))
        if removed:
            logger.info("Removed %d finished import jobs", removed)
        return removed


def create_import_coordinator(
    repo: ImportJobRepoPort,
    source: ImportSourcePort,
    credentials: CredentialValidatorPort,
    writer: ImportedStatsWriterPort,
    time_port: TimePort | None = None,
    config: ImportsConfig | None = None,
) -> ImportCoordinator:
    """Create an ImportCoordinator."""
    return ImportCoordinator(
        repo=repo,
        source=source,
        credentials=credentials,
        writer=writer,
        time_port=time_port,
        config=config,
    )


# --- Component Entry Points ---


def run_start_import(inp: StartImportInput, *, coordinator: ImportCoordinator) -> ImportJobOutput:
    """
    Create an import job.

    Input problems come back in the output; credential, conflict, and
    upstream failures raise.
    """
    errors = validate_start_import(inp)
    if errors:
        return ImportJobOutput(job=None, errors=errors, success=False)
    return ImportJobOutput(job=coordinator.start_import(inp))


def run_get_import_status(job_id: UUID, *, coordinator: ImportCoordinator) -> ImportJobOutput:
    return ImportJobOutput(job=coordinator.get_status(job_id))


def run_cancel_import(job_id: UUID, *, coordinator: ImportCoordinator) -> ImportJobOutput:
    return ImportJobOutput(job=coordinator.cancel(job_id))


def run(inp: StartImportInput, *, coordinator: ImportCoordinator) -> ImportJobOutput:
    """Main component entry point."""
    return run_start_import(inp, coordinator=coordinator)


def run_import_job(job_id: UUID, *, coordinator: ImportCoordinator) -> ImportJobOutput:
    """Run (or resume) the batch loop. Intended for a background task."""
    return ImportJobOutput(job=coordinator.run_batches(job_id))


def run_retry_import(job_id: UUID, *, coordinator: ImportCoordinator) -> ImportJobOutput:
    """Move a failed job back to in_progress; the caller schedules run_import_job."""
    return ImportJobOutput(job=coordinator.retry_failed_job(job_id))
