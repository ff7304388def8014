"""
Contract tests for the SQLite repositories.
"""

from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import UTC, date, datetime, timedelta
from uuid import uuid4

import pytest

from src.adapters.sqlite.repos import (
    SQLiteEventRepo,
    SQLiteImportedStatsRepo,
    SQLiteImportJobRepo,
    SQLiteShareRepo,
    SQLiteSiteOwnerRepo,
)
from src.components.imports import (
    DateRange,
    ImportCoordinator,
    ImportJob,
    InMemoryImportSource,
    StartImportInput,
    StaticCredentialValidator,
)
from src.components.ingest import Event
from src.components.shares import CreateShareInput, ShareGovernor, ShareToken
from src.components.stats import ImportedDailyStat, StatsEngine
from src.core.errors import NotFoundError, UpstreamError

NOW = datetime(2026, 1, 12, 12, 0, 0, tzinfo=UTC)


class FakeTimePort:
    def __init__(self, now: datetime = NOW) -> None:
        self._now = now

    def now_utc(self) -> datetime:
        return self._now


def make_job(site_id: str = "site_1", status: str = "pending") -> ImportJob:
    return ImportJob(
        id=uuid4(),
        site_id=site_id,
        source_property_id="prop_1",
        date_range=DateRange(start=date(2025, 1, 1), end=date(2025, 1, 31)),
        status=status,  # type: ignore[arg-type]
        total_rows=10,
        imported_rows=0,
        batch_size=5,
        current_batch=0,
        total_batches=2,
        retry_count=0,
        max_retries=3,
        created_at=NOW,
        updated_at=NOW,
    )


class TestEventRepo:
    def test_append_and_range(self, migrated_db: str) -> None:
        repo = SQLiteEventRepo(migrated_db)
        for minutes in (0, 30, 90):
            repo.append(
                Event(
                    site_id="site_1",
                    fingerprint="fp1",
                    type="pageview",
                    path="/",
                    timestamp=NOW + timedelta(minutes=minutes),
                    properties={"plan": "pro", "tags": ["a", "b"]},
                )
            )

        events = repo.list_events("site_1", NOW, NOW + timedelta(hours=1))
        assert [e.timestamp for e in events] == [NOW, NOW + timedelta(minutes=30)]
        assert events[0].properties == {"plan": "pro", "tags": ["a", "b"]}
        assert repo.list_events("site_2", NOW, NOW + timedelta(hours=2)) == []

    def test_whole_second_and_fractional_timestamps_order(self, migrated_db: str) -> None:
        repo = SQLiteEventRepo(migrated_db)
        repo.append(
            Event(
                site_id="s",
                fingerprint="f",
                type="pageview",
                path="/",
                timestamp=NOW + timedelta(microseconds=500),
            )
        )
        assert len(repo.list_events("s", NOW, NOW + timedelta(seconds=1))) == 1

    def test_stats_engine_over_sqlite(self, migrated_db: str) -> None:
        events = SQLiteEventRepo(migrated_db)
        events.append(
            Event(site_id="site_1", fingerprint="fp1", type="pageview", path="/", timestamp=NOW)
        )
        imported = SQLiteImportedStatsRepo(migrated_db)
        imported.add_rows(
            [ImportedDailyStat(site_id="site_1", date=NOW.date(), pageviews=4, visitors=2)]
        )

        engine = StatsEngine(events=events, imported=imported, time_port=FakeTimePort())
        summary = engine.summary("site_1", NOW.date(), NOW.date())
        assert summary.pageviews == 5
        assert summary.unique_visitors == 3


class TestShareRepo:
    def test_roundtrip_and_conditional_revoke(self, migrated_db: str) -> None:
        repo = SQLiteShareRepo(migrated_db)
        share = ShareToken(
            token="share_0123456789abcdef",
            site_id="site_1",
            owner_id="owner_1",
            created_at=NOW,
            allowed_periods=("7d", "30d"),
            expires_at=NOW + timedelta(days=7),
            password_hash="$argon2id$fake",
        )
        repo.save(share)
        assert repo.get(share.token) == share

        assert repo.revoke(share.token, "intruder", NOW) is False
        assert repo.revoke(share.token, "owner_1", NOW) is True
        assert repo.revoke(share.token, "owner_1", NOW) is False
        stored = repo.get(share.token)
        assert stored is not None and stored.revoked_at == NOW

    def test_governor_revoke_visible_across_connections(self, migrated_db: str) -> None:
        governor = ShareGovernor(repo=SQLiteShareRepo(migrated_db), time_port=FakeTimePort())

        token = governor.create(CreateShareInput(site_id="site_1", owner_id="owner_1")).token

        def validate_once(_: int) -> bool:
            try:
                ShareGovernor(repo=SQLiteShareRepo(migrated_db), time_port=FakeTimePort()).validate(
                    token, "7d"
                )
                return True
            except NotFoundError:
                return False

        with ThreadPoolExecutor(max_workers=4) as pool:
            before = list(pool.map(validate_once, range(8)))
            governor.revoke(token, "owner_1")
            after = list(pool.map(validate_once, range(8)))

        assert all(before)
        assert not any(after)


class TestImportJobRepo:
    def test_one_active_job_per_site(self, migrated_db: str) -> None:
        repo = SQLiteImportJobRepo(migrated_db)
        first = make_job()
        assert repo.create_if_no_active(first) is True
        assert repo.create_if_no_active(make_job()) is False
        assert repo.create_if_no_active(make_job(site_id="site_2")) is True
        assert repo.find_active("site_1") == first

    def test_concurrent_creates_single_winner(self, migrated_db: str) -> None:
        repo = SQLiteImportJobRepo(migrated_db)
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: repo.create_if_no_active(make_job()), range(16)))
        assert results.count(True) == 1

    def test_compare_and_set(self, migrated_db: str) -> None:
        repo = SQLiteImportJobRepo(migrated_db)
        job = make_job()
        repo.create_if_no_active(job)

        running = replace(job, status="in_progress", imported_rows=5, started_at=NOW)
        assert repo.compare_and_set(running, "pending") is True
        assert repo.compare_and_set(replace(job, status="cancelled"), "pending") is False
        assert repo.get(job.id) == running

    def test_delete_finished_before(self, migrated_db: str) -> None:
        repo = SQLiteImportJobRepo(migrated_db)

        old = make_job()
        repo.create_if_no_active(old)
        repo.compare_and_set(
            replace(old, status="cancelled", cancelled_at=NOW - timedelta(days=40)), "pending"
        )
        active = make_job()
        repo.create_if_no_active(active)

        assert repo.delete_finished_before(NOW - timedelta(days=30)) == 1
        assert repo.get(old.id) is None
        assert repo.get(active.id) is not None

    def test_coordinator_end_to_end(self, migrated_db: str) -> None:
        rows = [{"date": "20250105", "pagePath": f"/p{i}", "screenPageViews": 1} for i in range(7)]
        imported = SQLiteImportedStatsRepo(migrated_db)
        coordinator = ImportCoordinator(
            repo=SQLiteImportJobRepo(migrated_db),
            source=InMemoryImportSource({"prop_1": rows}),
            credentials=StaticCredentialValidator({"cred": "acct"}),
            writer=imported,
            time_port=FakeTimePort(),
        )
        job = coordinator.start_import(
            StartImportInput(
                site_id="site_1",
                credential="cred",
                property_id="prop_1",
                start_date=date(2025, 1, 1),
                end_date=date(2025, 1, 31),
            )
        )
        done = coordinator.run_batches(job.id)
        assert done.status == "completed"
        assert len(imported.list_imported("site_1", date(2025, 1, 1), date(2025, 1, 31))) == 7


class TestSiteOwnerRepo:
    def test_ownership(self, migrated_db: str) -> None:
        repo = SQLiteSiteOwnerRepo(migrated_db)
        repo.add_owner("site_1", "owner_1")
        repo.add_owner("site_1", "owner_1")
        assert repo.is_owner("site_1", "owner_1") is True
        assert repo.is_owner("site_1", "owner_2") is False
        assert repo.site_exists("site_1") is True
        assert repo.site_exists("site_2") is False


class TestErrorMapping:
    def test_missing_schema_is_upstream_error(self, db_path: str) -> None:
        with pytest.raises(UpstreamError):
            SQLiteEventRepo(db_path).list_events("site_1", NOW, NOW)

    def test_unopenable_path_is_upstream_error(self, tmp_path) -> None:  # type: ignore[no-untyped-def]
        missing_dir = os.path.join(str(tmp_path), "nope", "db.sqlite")
        with pytest.raises(UpstreamError):
            SQLiteEventRepo(missing_dir).list_events("site_1", NOW, NOW)
