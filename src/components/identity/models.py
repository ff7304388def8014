"""
Identity component models.

A fingerprint is derived from (daily salt, IP, user agent) and is the only
visitor identity that leaves this component.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date


@dataclass(frozen=True)
class IdentityValidationError:
    """Identity validation error."""

    code: str
    message: str
    field_name: str | None = None


@dataclass(frozen=True)
class HashingConfig:
    """Hashing configuration from rules."""

    fingerprint_length: int = 16
    salt_length: int = 16


@dataclass(frozen=True)
class SaltEpoch:
    """Salt bound to one calendar day."""

    day: date
    salt: str


@dataclass(frozen=True)
class FingerprintInput:
    """Raw connection attributes. Never stored or logged."""

    ip: str | None
    user_agent: str | None

    def __repr__(self) -> str:
        return "FingerprintInput(<redacted>)"


@dataclass(frozen=True)
class FingerprintOutput:
    """Derived visitor token."""

    fingerprint: str | None
    epoch_day: date | None = None
    errors: list[IdentityValidationError] = field(default_factory=list)
    success: bool = True
