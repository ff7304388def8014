"""
Imports component - Resumable bulk import of external analytics exports.
"""

from ._impl import InMemoryImportJobRepo, InMemoryImportSource, StaticCredentialValidator
from .component import (
    ALLOWED_TRANSITIONS,
    FIELD_MAP,
    ROW_DEFAULTS,
    ImportCoordinator,
    calculate_import_batches,
    calculate_progress,
    can_transition,
    create_import_coordinator,
    map_external_row,
    normalize_import_date,
    run,
    run_cancel_import,
    run_get_import_status,
    run_import_job,
    run_retry_import,
    run_start_import,
    validate_start_import,
)
from .models import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    CredentialCheck,
    DateRange,
    ExternalRow,
    ImportBatch,
    ImportJob,
    ImportJobOutput,
    ImportsConfig,
    ImportStatus,
    ImportsValidationError,
    StartImportInput,
)
from .ports import (
    CredentialValidatorPort,
    ImportedStatsWriterPort,
    ImportJobRepoPort,
    ImportSourcePort,
    TimePort,
)

__all__ = [
    # Entry points
    "run",
    "run_cancel_import",
    "run_get_import_status",
    "run_import_job",
    "run_retry_import",
    "run_start_import",
    "ImportCoordinator",
    "create_import_coordinator",
    # Pure functions
    "ALLOWED_TRANSITIONS",
    "FIELD_MAP",
    "ROW_DEFAULTS",
    "calculate_import_batches",
    "calculate_progress",
    "can_transition",
    "map_external_row",
    "normalize_import_date",
    "validate_start_import",
    # Adapters
    "InMemoryImportJobRepo",
    "InMemoryImportSource",
    "StaticCredentialValidator",
    # Models
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "CredentialCheck",
    "DateRange",
    "ExternalRow",
    "ImportBatch",
    "ImportJob",
    "ImportJobOutput",
    "ImportsConfig",
    "ImportStatus",
    "ImportsValidationError",
    "StartImportInput",
    # Ports
    "CredentialValidatorPort",
    "ImportedStatsWriterPort",
    "ImportJobRepoPort",
    "ImportSourcePort",
    "TimePort",
]
