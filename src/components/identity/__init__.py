"""
Identity component - Anonymous visitor fingerprints.
"""

from .component import (
    DEFAULT_SECRET_ENV,
    SystemTimePort,
    VisitorHasher,
    compute_fingerprint,
    create_hasher_from_env,
    derive_daily_salt,
    epoch_day,
    run_fingerprint,
)
from .models import (
    FingerprintInput,
    FingerprintOutput,
    HashingConfig,
    IdentityValidationError,
    SaltEpoch,
)
from .ports import TimePort

__all__ = [
    # Component
    "VisitorHasher",
    "create_hasher_from_env",
    "run_fingerprint",
    # Pure functions
    "compute_fingerprint",
    "derive_daily_salt",
    "epoch_day",
    # Constants / defaults
    "DEFAULT_SECRET_ENV",
    "SystemTimePort",
    # Models
    "FingerprintInput",
    "FingerprintOutput",
    "HashingConfig",
    "IdentityValidationError",
    "SaltEpoch",
    # Ports
    "TimePort",
]
