"""
Shares component - Time-boxed public access to site statistics.

Invariants:
- Every validation re-reads the share; no decision is cached
- Expired or revoked tokens always reject, regardless of prior validity
- Periods outside allowed_periods always reject
- Passwords are stored only as argon2 hashes
- Public responses never include the owner id or password hash
"""

from __future__ import annotations

import secrets
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta

from src.components.stats import PERIOD_DAYS, StatsEngine
from src.core.errors import AuthorizationError, NotFoundError, ValidationError

from ._impl import Argon2PasswordHasher
from .models import (
    CreateShareInput,
    PublicStatsOutput,
    RejectionReason,
    ShareAccess,
    ShareOutput,
    SharesConfig,
    SharesValidationError,
    ShareToken,
    ShareView,
    ValidateShareInput,
    ValidateShareOutput,
)
from .ports import PasswordHasherPort, ShareRepoPort, TimePort

DEFAULT_CONFIG = SharesConfig()


# --- Pure Functions (Functional Core) ---


def generate_share_token(config: SharesConfig = DEFAULT_CONFIG) -> str:
    """Prefix plus 2*token_bytes hex chars."""
    return f"{config.token_prefix}{secrets.token_hex(config.token_bytes)}"


def resolve_expiry(
    expires_in: str | None,
    now: datetime,
    config: SharesConfig = DEFAULT_CONFIG,
) -> datetime | None:
    """None means the share never expires."""
    if expires_in is None:
        return None
    days = config.expiry_presets.get(expires_in)
    if days is None:
        raise ValidationError(f"Unknown expiry '{expires_in}'", code="invalid_expires_in")
    return now + timedelta(days=days)


def validate_create_share(
    inp: CreateShareInput,
    config: SharesConfig = DEFAULT_CONFIG,
) -> list[SharesValidationError]:
    errors: list[SharesValidationError] = []

    if not inp.site_id:
        errors.append(
            SharesValidationError(
                code="site_id_required",
                message="Site ID is required",
                field_name="site_id",
            )
        )
    if not inp.owner_id:
        errors.append(
            SharesValidationError(
                code="owner_required",
                message="Owner is required",
                field_name="owner_id",
            )
        )

    if inp.expires_in is not None and inp.expires_in not in config.expiry_presets:
        errors.append(
            SharesValidationError(
                code="invalid_expires_in",
                message=f"expires_in must be one of: {', '.join(config.expiry_presets)}",
                field_name="expires_in",
            )
        )

    if inp.allowed_periods is not None:
        if not inp.allowed_periods:
            errors.append(
                SharesValidationError(
                    code="allowed_periods_empty",
                    message="At least one period must be allowed",
                    field_name="allowed_periods",
                )
            )
        unknown = [p for p in inp.allowed_periods if p not in PERIOD_DAYS]
        if unknown:
            errors.append(
                SharesValidationError(
                    code="invalid_period",
                    message=f"Periods must be among: {', '.join(PERIOD_DAYS)}",
                    field_name="allowed_periods",
                )
            )

    if inp.password is not None and not (
        config.min_password_length <= len(inp.password) <= config.max_password_length
    ):
        errors.append(
            SharesValidationError(
                code="invalid_password",
                message=(
                    f"Password must be {config.min_password_length}-"
                    f"{config.max_password_length} characters"
                ),
                field_name="password",
            )
        )

    return errors


def to_view(share: ShareToken) -> ShareView:
    return ShareView(
        token=share.token,
        site_id=share.site_id,
        created_at=share.created_at,
        expires_at=share.expires_at,
        allowed_periods=share.allowed_periods,
        has_password=share.has_password,
    )


# --- Governor (Shell) ---


class _SystemTime:
    def now_utc(self) -> datetime:
        return datetime.now(UTC)


class ShareGovernor:
    """
    Issues, validates, and revokes share tokens.

    Validation always goes to the repo, so a revoke is visible to the very
    next call.
    """

    def __init__(
        self,
        repo: ShareRepoPort,
        password_hasher: PasswordHasherPort | None = None,
        time_port: TimePort | None = None,
        config: SharesConfig | None = None,
    ) -> None:
        self._repo = repo
        self._hasher = password_hasher or Argon2PasswordHasher()
        self._time = time_port or _SystemTime()
        self._config = config or DEFAULT_CONFIG

    @property
    def config(self) -> SharesConfig:
        return self._config

    def create(self, inp: CreateShareInput) -> ShareToken:
        errors = validate_create_share(inp, self._config)
        if errors:
            raise ValidationError(errors[0].message, code=errors[0].code)
        assert inp.site_id is not None and inp.owner_id is not None

        now = self._time.now_utc()
        share = ShareToken(
            token=generate_share_token(self._config),
            site_id=inp.site_id,
            owner_id=inp.owner_id,
            created_at=now,
            expires_at=resolve_expiry(inp.expires_in, now, self._config),
            allowed_periods=tuple(inp.allowed_periods or self._config.default_allowed_periods),
            password_hash=self._hasher.hash(inp.password) if inp.password else None,
        )
        self._repo.save(share)
        return share

    def validate(
        self,
        token: str,
        period: str | None = None,
        password: str | None = None,
    ) -> ShareAccess:
        """
        Check a token for one period.

        Order: existence (incl. revoked), expiry, period, password.
        Raises NotFoundError or AuthorizationError with the rejection code.
        """
        share = self._repo.get(token) if token else None
        if share is None or share.is_revoked:
            raise NotFoundError("Share not found", code="not_found")

        if share.is_expired(self._time.now_utc()):
            raise NotFoundError("Share has expired", code="expired")

        requested = period or (
            self._config.default_period
            if self._config.default_period in share.allowed_periods
            else share.allowed_periods[0]
        )
        if requested not in share.allowed_periods:
            raise AuthorizationError(
                f"Period '{requested}' is not allowed for this share",
                code="period_not_allowed",
            )

        if share.password_hash is not None:
            if not password:
                raise AuthorizationError("Password required", code="password_required")
            if not self._hasher.verify(password, share.password_hash):
                raise AuthorizationError("Invalid password", code="invalid_password")

        return ShareAccess(
            site_id=share.site_id,
            period=requested,
            allowed_periods=share.allowed_periods,
        )

    def is_still_valid(self, token: str) -> bool:
        """Re-check liveness at the point a response is committed."""
        share = self._repo.get(token)
        return share is not None and share.is_active(self._time.now_utc())

    def revoke(self, token: str, owner_id: str) -> None:
        """
        Soft-revoke. Missing and not-owned look the same to the caller.
        """
        if not self._repo.revoke(token, owner_id, self._time.now_utc()):
            raise NotFoundError("Share not found", code="not_found")

    def list_shares(self, site_id: str, owner_id: str) -> list[ShareToken]:
        """Active shares, newest first."""
        now = self._time.now_utc()
        shares = [s for s in self._repo.list_for_owner(site_id, owner_id) if s.is_active(now)]
        return sorted(shares, key=lambda s: s.created_at, reverse=True)


def create_share_governor(
    repo: ShareRepoPort,
    password_hasher: PasswordHasherPort | None = None,
    time_port: TimePort | None = None,
    config: SharesConfig | None = None,
) -> ShareGovernor:
    """Create a ShareGovernor."""
    return ShareGovernor(
        repo=repo,
        password_hasher=password_hasher,
        time_port=time_port,
        config=config,
    )


# --- Component Entry Points ---


def run_create_share(inp: CreateShareInput, *, governor: ShareGovernor) -> ShareOutput:
    errors = validate_create_share(inp, governor.config)
    if errors:
        return ShareOutput(share=None, errors=errors, success=False)
    return ShareOutput(share=to_view(governor.create(inp)))


def _rejection(error: NotFoundError | AuthorizationError) -> SharesValidationError:
    return SharesValidationError(code=error.code, message=error.message, field_name="token")


def run_validate_share(inp: ValidateShareInput, *, governor: ShareGovernor) -> ValidateShareOutput:
    """Structured accept/reject for a token and period."""
    try:
        access = governor.validate(inp.token or "", inp.period, inp.password)
    except (NotFoundError, AuthorizationError) as e:
        reason: RejectionReason = e.code  # type: ignore[assignment]
        return ValidateShareOutput(access=None, reason=reason, errors=[_rejection(e)], success=False)
    return ValidateShareOutput(access=access)


def run_public_stats(
    inp: ValidateShareInput,
    *,
    governor: ShareGovernor,
    engine: StatsEngine,
    dimensions: Sequence[str] | None = None,
) -> PublicStatsOutput:
    """
    Stats subset for a share holder.

    The token is re-checked after the stats are computed, so a revoke or
    expiry that lands mid-request is still honoured.
    """
    validated = run_validate_share(inp, governor=governor)
    if validated.access is None:
        return PublicStatsOutput(
            summary=None,
            reason=validated.reason,
            errors=validated.errors,
            success=False,
        )

    access = validated.access
    summary = engine.period_summary(access.site_id, access.period, dimensions)

    if not governor.is_still_valid(inp.token or ""):
        return PublicStatsOutput(
            summary=None,
            reason="not_found",
            errors=[
                SharesValidationError(code="not_found", message="Share not found", field_name="token")
            ],
            success=False,
        )

    return PublicStatsOutput(
        summary=summary,
        period=access.period,
        allowed_periods=access.allowed_periods,
    )


def run(inp: ValidateShareInput, *, governor: ShareGovernor) -> ValidateShareOutput:
    """Main component entry point."""
    return run_validate_share(inp, governor=governor)
