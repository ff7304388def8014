"""
Identity component - Anonymous visitor fingerprints.

Derives a short-lived, non-reversible visitor token from the client IP and
user agent.

Invariants:
- Raw IP / user agent never leave this module
- Same (IP, UA) gives the same fingerprint only within one salt epoch (UTC day)
- Salt is a pure function of (day, secret); no stored random state
- Missing secret fails closed with ConfigurationError
"""

from __future__ import annotations

import hashlib
import hmac
import os
from datetime import UTC, date, datetime
from threading import Lock

from src.core.errors import ConfigurationError

from .models import (
    FingerprintInput,
    FingerprintOutput,
    HashingConfig,
    IdentityValidationError,
    SaltEpoch,
)
from .ports import TimePort

DEFAULT_CONFIG = HashingConfig()
DEFAULT_SECRET_ENV = "ZTA_HASH_SECRET"

# Placeholder for requests that carry no IP / UA header
UNKNOWN_ATTRIBUTE = "unknown"


# --- Pure Functions (Functional Core) ---


def derive_daily_salt(day: date, secret: str, length: int = 16) -> str:
    """
    Derive the salt for a calendar day.

    Any process sharing the same secret computes the same salt for the same
    day, so no cross-process coordination is needed.
    """
    if not secret:
        raise ConfigurationError("Hash secret is not configured", code="missing_hash_secret")
    digest = hashlib.sha256(f"{day.isoformat()}{secret}".encode()).hexdigest()
    return digest[:length]


def compute_fingerprint(
    ip: str | None,
    user_agent: str | None,
    salt: str,
    length: int = 16,
) -> str:
    """Keyed one-way digest of ip|user_agent under the daily salt."""
    message = f"{ip or UNKNOWN_ATTRIBUTE}|{user_agent or UNKNOWN_ATTRIBUTE}"
    mac = hmac.new(salt.encode(), message.encode(), hashlib.sha256)
    return mac.hexdigest()[:length]


def epoch_day(now: datetime) -> date:
    """UTC calendar day of a timestamp."""
    if now.tzinfo is None:
        return now.date()
    return now.astimezone(UTC).date()


# --- Time ---


class SystemTimePort:
    def now_utc(self) -> datetime:
        return datetime.now(UTC)


# --- Hasher (Shell) ---


class VisitorHasher:
    """
    Process-wide visitor hasher.

    The salt for the current day is computed lazily and cached for the
    lifetime of that epoch.
    """

    def __init__(
        self,
        secret: str | None,
        time_port: TimePort | None = None,
        config: HashingConfig | None = None,
    ) -> None:
        if not secret or not secret.strip():
            raise ConfigurationError(
                "Hash secret is required for visitor hashing",
                code="missing_hash_secret",
            )
        self._secret = secret
        self._time = time_port or SystemTimePort()
        self._config = config or DEFAULT_CONFIG
        self._epoch: SaltEpoch | None = None
        self._lock = Lock()

    def __repr__(self) -> str:
        return f"VisitorHasher(fingerprint_length={self._config.fingerprint_length})"

    def current_day(self) -> date:
        """Current salt epoch (UTC day)."""
        return epoch_day(self._time.now_utc())

    def daily_salt(self, day: date | None = None) -> str:
        """Salt for `day` (default: today UTC)."""
        target = day or self.current_day()
        epoch = self._epoch
        if epoch is not None and epoch.day == target:
            return epoch.salt

        salt = derive_daily_salt(target, self._secret, self._config.salt_length)
        if target == self.current_day():
            with self._lock:
                self._epoch = SaltEpoch(day=target, salt=salt)
        return salt

    def fingerprint(
        self,
        ip: str | None,
        user_agent: str | None,
        day: date | None = None,
    ) -> str:
        """Fingerprint for the given attributes in the current (or given) epoch."""
        salt = self.daily_salt(day)
        return compute_fingerprint(ip, user_agent, salt, self._config.fingerprint_length)


def create_hasher_from_env(
    env_var: str = DEFAULT_SECRET_ENV,
    time_port: TimePort | None = None,
    config: HashingConfig | None = None,
) -> VisitorHasher:
    """Build a hasher from the process secret. Raises ConfigurationError if unset."""
    secret = os.environ.get(env_var)
    if not secret:
        raise ConfigurationError(
            f"{env_var} environment variable is required for visitor hashing",
            code="missing_hash_secret",
        )
    return VisitorHasher(secret, time_port=time_port, config=config)


# --- Component Entry Points ---


def run_fingerprint(inp: FingerprintInput, *, hasher: VisitorHasher) -> FingerprintOutput:
    """
    Derive a fingerprint from raw connection attributes.

    Both attributes missing is rejected: every visitor would collapse into one
    identity.
    """
    if not inp.ip and not inp.user_agent:
        return FingerprintOutput(
            fingerprint=None,
            errors=[
                IdentityValidationError(
                    code="missing_connection_attributes",
                    message="Client IP or user agent is required",
                )
            ],
            success=False,
        )

    day = hasher.current_day()
    return FingerprintOutput(
        fingerprint=hasher.fingerprint(inp.ip, inp.user_agent, day),
        epoch_day=day,
    )
