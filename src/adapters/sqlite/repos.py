"""
SQLite repositories behind the component ports.

Each call opens its own connection, so repos are safe to share across
request threads. Conditional writes (share revoke, job compare-and-set,
one-active-job insert) are single statements or IMMEDIATE transactions.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, date, datetime
from typing import Any
from uuid import UUID

from src.components.imports.models import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    DateRange,
    ImportJob,
)
from src.components.ingest.models import Event
from src.components.shares.models import ShareToken
from src.components.stats.models import ImportedDailyStat
from src.core.errors import UpstreamError

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------


def dict_factory(cursor: sqlite3.Cursor, row: Any) -> dict[str, Any]:
    """Convert SQLite row to dictionary."""
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


def format_dt(dt: datetime | None) -> str | None:
    """UTC ISO string with fixed precision so text order matches time order."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat(timespec="microseconds")


def parse_dt(s: str | None) -> datetime | None:
    return datetime.fromisoformat(s) if s else None


def _placeholders(values: frozenset[str]) -> tuple[str, tuple[str, ...]]:
    ordered = tuple(sorted(values))
    return ", ".join("?" for _ in ordered), ordered


# -----------------------------------------------------------------------------
# Base SQLite Repository
# -----------------------------------------------------------------------------


class SQLiteRepoBase:
    """Base class for SQLite repositories."""

    def __init__(self, db_path: str, timeout: float = 10.0):
        self.db_path = db_path
        self._timeout = timeout

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=self._timeout)
        conn.row_factory = dict_factory
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Connection that commits on success and maps driver errors to UpstreamError."""
        try:
            conn = self._get_conn()
        except sqlite3.Error as e:
            logger.error("Could not open %s: %s", self.db_path, e)
            raise UpstreamError(f"Database unavailable: {e}", code="store_unavailable") from e
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.error("%s failed: %s", type(self).__name__, e)
            raise UpstreamError(f"Database error: {e}", code="store_error") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()


# -----------------------------------------------------------------------------
# Events
# -----------------------------------------------------------------------------


class SQLiteEventRepo(SQLiteRepoBase):
    """EventStorePort and EventReadPort over the events table."""

    def append(self, event: Event) -> None:
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO events (
                    site_id, fingerprint, type, name, path, ts, session_id,
                    properties_json, country, device, browser, referrer
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event.site_id,
                    event.fingerprint,
                    event.type,
                    event.name,
                    event.path,
                    format_dt(event.timestamp),
                    event.session_id,
                    json.dumps(event.properties),
                    event.country,
                    event.device,
                    event.browser,
                    event.referrer,
                ),
            )

    def list_events(self, site_id: str, start: datetime, end: datetime) -> list[Event]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM events WHERE site_id = ? AND ts >= ? AND ts < ? ORDER BY ts, id",
                (site_id, format_dt(start), format_dt(end)),
            ).fetchall()
        return [self._map_row(r) for r in rows]

    def _map_row(self, row: dict[str, Any]) -> Event:
        return Event(
            site_id=row["site_id"],
            fingerprint=row["fingerprint"],
            type=row["type"],
            name=row["name"],
            path=row["path"],
            timestamp=datetime.fromisoformat(row["ts"]),
            session_id=row["session_id"],
            properties=json.loads(row["properties_json"] or "{}"),
            country=row["country"],
            device=row["device"],
            browser=row["browser"],
            referrer=row["referrer"],
        )


# -----------------------------------------------------------------------------
# Share tokens
# -----------------------------------------------------------------------------


class SQLiteShareRepo(SQLiteRepoBase):
    """ShareRepoPort over the share_tokens table."""

    def save(self, share: ShareToken) -> None:
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO share_tokens (
                    token, site_id, owner_id, allowed_periods_json, password_hash,
                    created_at, expires_at, revoked_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    share.token,
                    share.site_id,
                    share.owner_id,
                    json.dumps(list(share.allowed_periods)),
                    share.password_hash,
                    format_dt(share.created_at),
                    format_dt(share.expires_at),
                    format_dt(share.revoked_at),
                ),
            )

    def get(self, token: str) -> ShareToken | None:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM share_tokens WHERE token = ?", (token,)).fetchone()
        return self._map_row(row) if row else None

    def revoke(self, token: str, owner_id: str, revoked_at: datetime) -> bool:
        with self._connection() as conn:
            cursor = conn.execute(
                """
                UPDATE share_tokens SET revoked_at = ?
                WHERE token = ? AND owner_id = ? AND revoked_at IS NULL
                """,
                (format_dt(revoked_at), token, owner_id),
            )
            return cursor.rowcount == 1

    def list_for_owner(self, site_id: str, owner_id: str) -> list[ShareToken]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM share_tokens WHERE site_id = ? AND owner_id = ? "
                "ORDER BY created_at DESC",
                (site_id, owner_id),
            ).fetchall()
        return [self._map_row(r) for r in rows]

    def _map_row(self, row: dict[str, Any]) -> ShareToken:
        return ShareToken(
            token=row["token"],
            site_id=row["site_id"],
            owner_id=row["owner_id"],
            created_at=datetime.fromisoformat(row["created_at"]),
            allowed_periods=tuple(json.loads(row["allowed_periods_json"])),
            expires_at=parse_dt(row["expires_at"]),
            password_hash=row["password_hash"],
            revoked_at=parse_dt(row["revoked_at"]),
        )


# -----------------------------------------------------------------------------
# Import jobs
# -----------------------------------------------------------------------------

_JOB_COLUMNS = (
    "id",
    "site_id",
    "source_property_id",
    "account_id",
    "start_date",
    "end_date",
    "status",
    "total_rows",
    "imported_rows",
    "batch_size",
    "current_batch",
    "total_batches",
    "retry_count",
    "max_retries",
    "error",
    "created_at",
    "updated_at",
    "started_at",
    "completed_at",
    "failed_at",
    "cancelled_at",
)


class SQLiteImportJobRepo(SQLiteRepoBase):
    """ImportJobRepoPort over the import_jobs table."""

    def get(self, job_id: UUID) -> ImportJob | None:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM import_jobs WHERE id = ?", (str(job_id),)).fetchone()
        return self._map_row(row) if row else None

    def create_if_no_active(self, job: ImportJob) -> bool:
        marks, statuses = _placeholders(ACTIVE_STATUSES)
        with self._connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            active = conn.execute(
                f"SELECT id FROM import_jobs WHERE site_id = ? AND status IN ({marks}) LIMIT 1",
                (job.site_id, *statuses),
            ).fetchone()
            if active is not None:
                return False
            conn.execute(
                f"INSERT INTO import_jobs ({', '.join(_JOB_COLUMNS)}) "
                f"VALUES ({', '.join('?' for _ in _JOB_COLUMNS)})",
                self._to_params(job),
            )
            return True

    def compare_and_set(self, job: ImportJob, expected_status: str) -> bool:
        assignments = ", ".join(f"{col} = ?" for col in _JOB_COLUMNS[1:])
        params = self._to_params(job)
        with self._connection() as conn:
            cursor = conn.execute(
                f"UPDATE import_jobs SET {assignments} WHERE id = ? AND status = ?",
                (*params[1:], params[0], expected_status),
            )
            return cursor.rowcount == 1

    def find_active(self, site_id: str) -> ImportJob | None:
        marks, statuses = _placeholders(ACTIVE_STATUSES)
        with self._connection() as conn:
            row = conn.execute(
                f"SELECT * FROM import_jobs WHERE site_id = ? AND status IN ({marks}) LIMIT 1",
                (site_id, *statuses),
            ).fetchone()
        return self._map_row(row) if row else None

    def list_for_site(self, site_id: str) -> list[ImportJob]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM import_jobs WHERE site_id = ? ORDER BY created_at DESC",
                (site_id,),
            ).fetchall()
        return [self._map_row(r) for r in rows]

    def delete_finished_before(self, cutoff: datetime) -> int:
        marks, statuses = _placeholders(TERMINAL_STATUSES)
        with self._connection() as conn:
            cursor = conn.execute(
                f"""
                DELETE FROM import_jobs
                WHERE status IN ({marks})
                AND COALESCE(completed_at, failed_at, cancelled_at, updated_at) < ?
                """,
                (*statuses, format_dt(cutoff)),
            )
            return cursor.rowcount

    def _to_params(self, job: ImportJob) -> tuple[Any, ...]:
        return (
            str(job.id),
            job.site_id,
            job.source_property_id,
            job.account_id,
            job.date_range.start.isoformat(),
            job.date_range.end.isoformat(),
            job.status,
            job.total_rows,
            job.imported_rows,
            job.batch_size,
            job.current_batch,
            job.total_batches,
            job.retry_count,
            job.max_retries,
            job.error,
            format_dt(job.created_at),
            format_dt(job.updated_at),
            format_dt(job.started_at),
            format_dt(job.completed_at),
            format_dt(job.failed_at),
            format_dt(job.cancelled_at),
        )

    def _map_row(self, row: dict[str, Any]) -> ImportJob:
        return ImportJob(
            id=UUID(row["id"]),
            site_id=row["site_id"],
            source_property_id=row["source_property_id"],
            account_id=row["account_id"],
            date_range=DateRange(
                start=date.fromisoformat(row["start_date"]),
                end=date.fromisoformat(row["end_date"]),
            ),
            status=row["status"],
            total_rows=row["total_rows"],
            imported_rows=row["imported_rows"],
            batch_size=row["batch_size"],
            current_batch=row["current_batch"],
            total_batches=row["total_batches"],
            retry_count=row["retry_count"],
            max_retries=row["max_retries"],
            error=row["error"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
            started_at=parse_dt(row["started_at"]),
            completed_at=parse_dt(row["completed_at"]),
            failed_at=parse_dt(row["failed_at"]),
            cancelled_at=parse_dt(row["cancelled_at"]),
        )


# -----------------------------------------------------------------------------
# Imported daily stats
# -----------------------------------------------------------------------------


class SQLiteImportedStatsRepo(SQLiteRepoBase):
    """ImportedStatsPort and ImportedStatsWriterPort."""

    def add_rows(self, rows: list[ImportedDailyStat]) -> int:
        if not rows:
            return 0
        with self._connection() as conn:
            conn.executemany(
                """
                INSERT INTO imported_daily_stats (
                    site_id, date, path, referrer, country, device, pageviews,
                    visitors, sessions, bounce_rate, avg_session_duration, import_id
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        r.site_id,
                        r.date.isoformat(),
                        r.path,
                        r.referrer,
                        r.country,
                        r.device,
                        r.pageviews,
                        r.visitors,
                        r.sessions,
                        r.bounce_rate,
                        r.avg_session_duration,
                        r.import_id,
                    )
                    for r in rows
                ],
            )
        return len(rows)

    def list_imported(
        self, site_id: str, start_date: date, end_date: date
    ) -> list[ImportedDailyStat]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM imported_daily_stats WHERE site_id = ? AND date >= ? AND date <= ? "
                "ORDER BY date, id",
                (site_id, start_date.isoformat(), end_date.isoformat()),
            ).fetchall()
        return [
            ImportedDailyStat(
                site_id=r["site_id"],
                date=date.fromisoformat(r["date"]),
                path=r["path"],
                referrer=r["referrer"],
                country=r["country"],
                device=r["device"],
                pageviews=r["pageviews"],
                visitors=r["visitors"],
                sessions=r["sessions"],
                bounce_rate=r["bounce_rate"],
                avg_session_duration=r["avg_session_duration"],
                import_id=r["import_id"],
            )
            for r in rows
        ]


# -----------------------------------------------------------------------------
# Site ownership
# -----------------------------------------------------------------------------


class SQLiteSiteOwnerRepo(SQLiteRepoBase):
    def add_owner(self, site_id: str, owner_id: str, created_at: datetime | None = None) -> None:
        with self._connection() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO site_owners (site_id, owner_id, created_at) VALUES (?, ?, ?)",
                (site_id, owner_id, format_dt(created_at or datetime.now(UTC))),
            )

    def is_owner(self, site_id: str, owner_id: str) -> bool:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT 1 AS hit FROM site_owners WHERE site_id = ? AND owner_id = ?",
                (site_id, owner_id),
            ).fetchone()
        return row is not None

    def site_exists(self, site_id: str) -> bool:
        """A site is registered once it has at least one owner."""
        with self._connection() as conn:
            row = conn.execute(
                "SELECT 1 AS hit FROM site_owners WHERE site_id = ? LIMIT 1", (site_id,)
            ).fetchone()
        return row is not None
