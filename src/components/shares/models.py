"""
Shares component input/output models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from src.components.stats.models import StatsSummary

# --- Validation Error ---


@dataclass(frozen=True)
class SharesValidationError:
    """Shares validation error."""

    code: str
    message: str
    field_name: str | None = None


# --- Enums ---


RejectionReason = Literal[
    "not_found",
    "expired",
    "period_not_allowed",
    "password_required",
    "invalid_password",
]


# --- Configuration ---


@dataclass(frozen=True)
class SharesConfig:
    """Share token configuration from rules."""

    token_prefix: str = "share_"
    token_bytes: int = 8
    default_allowed_periods: tuple[str, ...] = ("7d", "30d", "90d")
    default_period: str = "7d"
    # expires_in preset -> days
    expiry_presets: dict[str, int] = field(
        default_factory=lambda: {"1d": 1, "7d": 7, "30d": 30, "90d": 90}
    )
    min_password_length: int = 4
    max_password_length: int = 128


# --- Share Token ---


@dataclass(frozen=True)
class ShareToken:
    """Capability granting scoped, time-boxed read access to one site's stats."""

    token: str
    site_id: str
    owner_id: str
    created_at: datetime
    allowed_periods: tuple[str, ...]
    expires_at: datetime | None = None
    password_hash: str | None = None
    revoked_at: datetime | None = None

    def __repr__(self) -> str:
        return (
            f"ShareToken(token={self.token[:8]!r}..., site_id={self.site_id!r}, "
            f"expires_at={self.expires_at!r}, revoked={self.revoked_at is not None})"
        )

    @property
    def has_password(self) -> bool:
        return self.password_hash is not None

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def is_active(self, now: datetime) -> bool:
        return not self.is_revoked and not self.is_expired(now)


# --- Input Models ---


@dataclass(frozen=True)
class CreateShareInput:
    site_id: str | None
    owner_id: str | None
    expires_in: str | None = None
    allowed_periods: tuple[str, ...] | None = None
    password: str | None = None

    def __repr__(self) -> str:
        return (
            f"CreateShareInput(site_id={self.site_id!r}, expires_in={self.expires_in!r}, "
            f"allowed_periods={self.allowed_periods!r})"
        )


@dataclass(frozen=True)
class ValidateShareInput:
    token: str | None
    period: str | None = None
    password: str | None = None

    def __repr__(self) -> str:
        prefix = self.token[:8] if self.token else None
        return f"ValidateShareInput(token={prefix!r}, period={self.period!r})"


# --- Output Models ---


@dataclass(frozen=True)
class ShareView:
    """Owner-facing view of a share. Never includes the password hash."""

    token: str
    site_id: str
    created_at: datetime
    expires_at: datetime | None
    allowed_periods: tuple[str, ...]
    has_password: bool


@dataclass(frozen=True)
class ShareAccess:
    """Scope granted by a validated token. Carries no owner identity."""

    site_id: str
    period: str
    allowed_periods: tuple[str, ...]


@dataclass(frozen=True)
class ShareOutput:
    share: ShareView | None
    errors: list[SharesValidationError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class ValidateShareOutput:
    access: ShareAccess | None
    reason: RejectionReason | None = None
    errors: list[SharesValidationError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class PublicStatsOutput:
    """Stats subset served to anonymous share holders."""

    summary: StatsSummary | None
    period: str | None = None
    allowed_periods: tuple[str, ...] = ()
    reason: RejectionReason | None = None
    errors: list[SharesValidationError] = field(default_factory=list)
    success: bool = True
