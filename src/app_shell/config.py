import logging
import os
from collections.abc import Mapping
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from src.core.errors import ConfigurationError
from src.rules.models import Rules

logger = logging.getLogger(__name__)


def validate_ops_rules(
    rules: Rules,
    data_dir: Path,
    environ: Mapping[str, str] | None = None,
) -> None:
    """
    Validate operational requirements before startup.

    Raises ConfigurationError so the process refuses to boot.
    """
    env = os.environ if environ is None else environ
    ops = rules.ops

    # 1. Required env (empty counts as missing)
    required = list(ops.required_env)
    if rules.analytics.hashing.secret_env not in required:
        required.append(rules.analytics.hashing.secret_env)

    missing = [name for name in required if not env.get(name, "").strip()]
    if missing:
        raise ConfigurationError(
            f"Missing required environment variables: {', '.join(missing)}",
            code="missing_env",
        )

    # 2. Reporting timezone
    try:
        ZoneInfo(rules.stats.reporting_timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigurationError(
            f"Unknown reporting timezone: {rules.stats.reporting_timezone}",
            code="invalid_timezone",
        ) from e

    # 3. Data dir
    if ops.data_dir_required:
        try:
            data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(
                f"Data directory {data_dir} is not usable: {e}",
                code="data_dir_unavailable",
            ) from e
        if not os.access(data_dir, os.W_OK):
            raise ConfigurationError(
                f"Data directory {data_dir} is not writable",
                code="data_dir_unavailable",
            )

    logger.info("Configuration validated (rules %s)", rules.project.rules_version)
