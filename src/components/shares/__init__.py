"""
Shares component - Time-boxed public access to site statistics.
"""

from ._impl import Argon2PasswordHasher, InMemoryShareRepo
from .component import (
    ShareGovernor,
    create_share_governor,
    generate_share_token,
    resolve_expiry,
    run,
    run_create_share,
    run_public_stats,
    run_validate_share,
    to_view,
    validate_create_share,
)
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

__all__ = [
    # Entry points
    "run",
    "run_create_share",
    "run_public_stats",
    "run_validate_share",
    "ShareGovernor",
    "create_share_governor",
    # Pure functions
    "generate_share_token",
    "resolve_expiry",
    "to_view",
    "validate_create_share",
    # Adapters
    "Argon2PasswordHasher",
    "InMemoryShareRepo",
    # Models
    "CreateShareInput",
    "PublicStatsOutput",
    "RejectionReason",
    "ShareAccess",
    "ShareOutput",
    "SharesConfig",
    "SharesValidationError",
    "ShareToken",
    "ShareView",
    "ValidateShareInput",
    "ValidateShareOutput",
    # Ports
    "PasswordHasherPort",
    "ShareRepoPort",
    "TimePort",
]
