import os
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from src.adapters.clock import SystemClock
from src.adapters.sqlite.repos import (
    SQLiteEventRepo,
    SQLiteImportedStatsRepo,
    SQLiteImportJobRepo,
    SQLiteShareRepo,
    SQLiteSiteOwnerRepo,
)
from src.api.auth_utils import decode_access_token
from src.components.dedupe import DedupeConfig, DedupeService
from src.components.identity import HashingConfig, VisitorHasher, create_hasher_from_env
from src.components.imports import (
    ImportCoordinator,
    ImportsConfig,
    InMemoryImportSource,
    StaticCredentialValidator,
)
from src.components.ingest import EventIngestor, IngestConfig
from src.components.realtime import InMemoryEventBuffer, RealtimeConfig
from src.components.shares import Argon2PasswordHasher, ShareGovernor, SharesConfig
from src.components.stats import StatsConfig, StatsEngine
from src.core.errors import AuthorizationError
from src.rules.loader import load_rules, resolve_rules_path
from src.rules.models import Rules


# --- Settings ---
class Settings:
    def __init__(self) -> None:
        self.base_dir = Path(os.getcwd())
        self.data_dir = Path(os.environ.get("ZTA_DATA_DIR", "./data"))
        self.db_path = str(self.data_dir / "analytics.db")
        self.rules_path = resolve_rules_path()
        self.migrations_dir = self.base_dir / "migrations"


@lru_cache
def get_settings() -> Settings:
    return Settings()


# --- Rules ---
@lru_cache
def get_rules() -> Rules:
    return load_rules(get_settings().rules_path)


# --- Rules -> component configs ---
def hashing_config(rules: Rules) -> HashingConfig:
    hashing = rules.analytics.hashing
    return HashingConfig(
        fingerprint_length=hashing.fingerprint_length,
        salt_length=hashing.salt_length,
    )


def dedupe_config(rules: Rules) -> DedupeConfig:
    dedupe = rules.analytics.dedupe
    return DedupeConfig(
        enabled=dedupe.enabled,
        window_seconds=dedupe.window_seconds,
        shard_count=dedupe.shard_count,
        max_entries_per_shard=dedupe.max_entries_per_shard,
    )


def realtime_config(rules: Rules) -> RealtimeConfig:
    rt = rules.analytics.realtime
    return RealtimeConfig(
        default_window_minutes=rt.default_window_minutes,
        max_window_minutes=rt.max_window_minutes,
        retention_minutes=rt.retention_minutes,
        trend_slice_minutes=rt.trend_slice_minutes,
        trend_threshold=rt.trend_threshold,
        top_limit=rt.top_limit,
        recent_limit=rt.recent_limit,
    )


def ingest_config(rules: Rules) -> IngestConfig:
    events = rules.analytics.events
    return IngestConfig(
        allowed_types=frozenset(events.allowed_types),
        forbidden_fields=frozenset(events.forbidden_fields),
        max_properties=events.max_properties,
        max_property_key_length=events.max_property_key_length,
        max_property_value_length=events.max_property_value_length,
        max_path_length=events.max_path_length,
        reject_bots=events.reject_bots,
    )


def stats_config(rules: Rules) -> StatsConfig:
    return StatsConfig(
        reporting_timezone=rules.stats.reporting_timezone,
        breakdown_limit=rules.stats.breakdown_limit,
        max_range_days=rules.stats.max_range_days,
    )


def shares_config(rules: Rules) -> SharesConfig:
    return SharesConfig(
        token_prefix=rules.shares.token_prefix,
        default_allowed_periods=tuple(rules.shares.default_allowed_periods),
        expiry_presets=dict(rules.shares.expiry_presets),
    )


def imports_config(rules: Rules) -> ImportsConfig:
    return ImportsConfig(
        batch_size=rules.imports.batch_size,
        max_retries=rules.imports.max_retries,
        cleanup_after_days=rules.imports.cleanup_after_days,
        field_map=dict(rules.imports.field_map),
    )


# --- Repos ---
def get_event_repo(settings: Settings = Depends(get_settings)) -> SQLiteEventRepo:
    return SQLiteEventRepo(settings.db_path)


def get_imported_stats_repo(
    settings: Settings = Depends(get_settings),
) -> SQLiteImportedStatsRepo:
    return SQLiteImportedStatsRepo(settings.db_path)


def get_site_owner_repo(settings: Settings = Depends(get_settings)) -> SQLiteSiteOwnerRepo:
    return SQLiteSiteOwnerRepo(settings.db_path)


# --- Process-wide singletons ---
# The hasher caches the daily salt; dedupe and buffer hold shared in-memory state.
_clock_instance: SystemClock | None = None
_hasher_instance: VisitorHasher | None = None
_dedupe_instance: DedupeService | None = None
_buffer_instance: InMemoryEventBuffer | None = None
_import_source_instance: InMemoryImportSource | None = None
_credential_validator_instance: StaticCredentialValidator | None = None


def get_clock() -> SystemClock:
    """Get clock singleton."""
    global _clock_instance
    if _clock_instance is None:
        _clock_instance = SystemClock()
    return _clock_instance


def get_hasher() -> VisitorHasher:
    """Get visitor hasher singleton. Raises ConfigurationError without a secret."""
    global _hasher_instance
    if _hasher_instance is None:
        rules = get_rules()
        _hasher_instance = create_hasher_from_env(
            rules.analytics.hashing.secret_env,
            time_port=get_clock(),
            config=hashing_config(rules),
        )
    return _hasher_instance


def get_dedupe_service() -> DedupeService:
    global _dedupe_instance
    if _dedupe_instance is None:
        _dedupe_instance = DedupeService(time_port=get_clock(), config=dedupe_config(get_rules()))
    return _dedupe_instance


def get_event_buffer() -> InMemoryEventBuffer:
    global _buffer_instance
    if _buffer_instance is None:
        config = realtime_config(get_rules())
        _buffer_instance = InMemoryEventBuffer(retention_minutes=config.retention_minutes)
    return _buffer_instance


def get_import_source() -> InMemoryImportSource:
    """Dev import source. Real exports plug in behind ImportSourcePort."""
    global _import_source_instance
    if _import_source_instance is None:
        _import_source_instance = InMemoryImportSource()
    return _import_source_instance


def get_credential_validator() -> StaticCredentialValidator:
    global _credential_validator_instance
    if _credential_validator_instance is None:
        _credential_validator_instance = StaticCredentialValidator()
    return _credential_validator_instance


def reset_singletons() -> None:
    """Drop process-wide state (tests and config reloads)."""
    global _clock_instance, _hasher_instance, _dedupe_instance, _buffer_instance
    global _import_source_instance, _credential_validator_instance
    _clock_instance = None
    _hasher_instance = None
    _dedupe_instance = None
    _buffer_instance = None
    _import_source_instance = None
    _credential_validator_instance = None
    get_settings.cache_clear()
    get_rules.cache_clear()


def sweep_in_memory_state(now: datetime | None = None) -> tuple[int, int]:
    """
    Bound the in-memory hot-path state.

    Returns (buffered events dropped, dedupe keys expired).
    """
    now = now or get_clock().now_utc()
    return get_event_buffer().prune(now), get_dedupe_service().cleanup(now)


# --- Component Services ---
def get_ingestor(
    event_repo: SQLiteEventRepo = Depends(get_event_repo),
    owners: SQLiteSiteOwnerRepo = Depends(get_site_owner_repo),
) -> EventIngestor:
    return EventIngestor(
        hasher=get_hasher(),
        dedupe=get_dedupe_service(),
        event_store=event_repo,
        buffer=get_event_buffer(),
        time_port=get_clock(),
        config=ingest_config(get_rules()),
        sites=owners,
    )


def get_stats_engine(
    event_repo: SQLiteEventRepo = Depends(get_event_repo),
    imported_repo: SQLiteImportedStatsRepo = Depends(get_imported_stats_repo),
) -> StatsEngine:
    return StatsEngine(
        events=event_repo,
        imported=imported_repo,
        time_port=get_clock(),
        config=stats_config(get_rules()),
    )


def get_share_governor(settings: Settings = Depends(get_settings)) -> ShareGovernor:
    return ShareGovernor(
        repo=SQLiteShareRepo(settings.db_path),
        password_hasher=Argon2PasswordHasher(),
        time_port=get_clock(),
        config=shares_config(get_rules()),
    )


def get_import_coordinator(
    settings: Settings = Depends(get_settings),
    imported_repo: SQLiteImportedStatsRepo = Depends(get_imported_stats_repo),
) -> ImportCoordinator:
    return ImportCoordinator(
        repo=SQLiteImportJobRepo(settings.db_path),
        source=get_import_source(),
        credentials=get_credential_validator(),
        writer=imported_repo,
        time_port=get_clock(),
        config=imports_config(get_rules()),
    )


# --- Auth ---
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)


@dataclass(frozen=True)
class Owner:
    """Authenticated site owner."""

    id: str
    email: str | None = None


async def get_current_owner(
    token: Annotated[str | None, Depends(oauth2_scheme)],
) -> Owner:
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_access_token(token)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    owner_id = payload.get("sub")
    if owner_id is None or not isinstance(owner_id, str):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    return Owner(id=owner_id, email=payload.get("email"))


def ensure_site_owner(site_id: str, owner: Owner, owners: SQLiteSiteOwnerRepo) -> None:
    """Raise AuthorizationError unless owner owns site_id."""
    if not owners.is_owner(site_id, owner.id):
        raise AuthorizationError("Not an owner of this site", code="site_forbidden")


def get_owned_site(
    site_id: str,
    owner: Owner = Depends(get_current_owner),
    owners: SQLiteSiteOwnerRepo = Depends(get_site_owner_repo),
) -> str:
    """Resolve a site_id path/query parameter the current owner controls."""
    ensure_site_owner(site_id, owner, owners)
    return site_id
