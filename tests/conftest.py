from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from src.adapters.sqlite.migrator import SQLiteMigrator
from src.adapters.sqlite.repos import SQLiteSiteOwnerRepo
from src.api import deps
from src.api.auth_utils import create_owner_token

ROOT_DIR = Path(__file__).resolve().parents[1]
MIGRATIONS_DIR = ROOT_DIR / "migrations"
RULES_PATH = ROOT_DIR / "rules.yaml"


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    return str(tmp_path / "analytics.db")


@pytest.fixture
def migrated_db(db_path: str) -> str:
    """SQLite file with every migration applied."""
    SQLiteMigrator(db_path, str(MIGRATIONS_DIR)).run_migrations()
    return db_path


@pytest.fixture
def app_env(tmp_path: Path, migrated_db: str, monkeypatch: pytest.MonkeyPatch) -> Iterator[str]:
    """
    Point the API at a temp data dir and fresh process-wide singletons.

    site_1 is registered to owner_1. Yields the database path.
    """
    monkeypatch.setenv("ZTA_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("ZTA_RULES_PATH", str(RULES_PATH))
    monkeypatch.setenv("ZTA_HASH_SECRET", "test-secret-do-not-use")
    monkeypatch.setenv("ZTA_JWT_SECRET", "test-jwt-secret-do-not-use")
    SQLiteSiteOwnerRepo(migrated_db).add_owner("site_1", "owner_1")
    deps.reset_singletons()
    yield migrated_db
    deps.reset_singletons()


@pytest.fixture
def client(app_env: str) -> Iterator[TestClient]:
    from src.api.main import app

    app.dependency_overrides.clear()
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def owner_headers(app_env: str) -> dict[str, str]:
    """Bearer header for owner_1, who owns site_1."""
    token = create_owner_token("owner_1", "owner@example.com")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def stranger_headers(app_env: str) -> dict[str, str]:
    """Bearer header for an owner with no sites."""
    token = create_owner_token("owner_2", "stranger@example.com")
    return {"Authorization": f"Bearer {token}"}
