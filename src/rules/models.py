from pydantic import BaseModel, Field


class ProjectRules(BaseModel):
    slug: str
    rules_version: str


class HashingRules(BaseModel):
    secret_env: str = "ZTA_HASH_SECRET"
    fingerprint_length: int = Field(default=16, ge=8, le=64)
    salt_length: int = Field(default=16, ge=8, le=64)


class DedupeRules(BaseModel):
    enabled: bool = True
    window_seconds: float = Field(default=5.0, gt=0)
    shard_count: int = Field(default=16, ge=1)
    max_entries_per_shard: int = Field(default=10_000, ge=1)


class RealtimeRules(BaseModel):
    default_window_minutes: int = 30
    max_window_minutes: int = 1440
    retention_minutes: int = 1440
    trend_slice_minutes: int = 15
    trend_threshold: float = Field(default=0.10, ge=0)
    top_limit: int = 10
    recent_limit: int = 20


class EventRules(BaseModel):
    allowed_types: list[str] = ["pageview", "custom"]
    max_properties: int = 20
    max_property_key_length: int = 64
    max_property_value_length: int = 500
    max_path_length: int = 2048
    forbidden_fields: list[str] = ["ip", "ip_address", "user_agent", "email", "cookie"]
    reject_bots: bool = True


class AnalyticsRules(BaseModel):
    hashing: HashingRules = HashingRules()
    dedupe: DedupeRules = DedupeRules()
    realtime: RealtimeRules = RealtimeRules()
    events: EventRules = EventRules()


class StatsRules(BaseModel):
    reporting_timezone: str = "UTC"
    breakdown_limit: int = 10
    max_range_days: int = 731


class SharesRules(BaseModel):
    token_prefix: str = "share_"
    default_allowed_periods: list[str] = ["7d", "30d", "90d"]
    expiry_presets: dict[str, int] = {"1d": 1, "7d": 7, "30d": 30, "90d": 90}


class ImportsRules(BaseModel):
    batch_size: int = Field(default=1000, ge=1)
    max_retries: int = 3
    cleanup_after_days: int = 30
    field_map: dict[str, str] = {}


class OpsRules(BaseModel):
    data_dir_required: bool
    required_env: list[str]
    sweep_interval_seconds: float = Field(default=60, gt=0)


class Rules(BaseModel):
    project: ProjectRules
    analytics: AnalyticsRules
    stats: StatsRules
    shares: SharesRules
    imports: ImportsRules
    ops: OpsRules
