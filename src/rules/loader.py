import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from src.rules.models import Rules

DEFAULT_RULES_PATH = Path("rules.yaml")


def resolve_rules_path() -> Path:
    """Rules path from ZTA_RULES_PATH, falling back to ./rules.yaml."""
    override = os.environ.get("ZTA_RULES_PATH")
    return Path(override) if override else DEFAULT_RULES_PATH


def parse_rules(content: str) -> Rules:
    """
    Parse and validate rules YAML text.

    Raises ValueError on YAML syntax or schema problems.
    """
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML syntax in rules file: {e}") from e

    if not isinstance(data, dict):
        raise ValueError("Rules file must contain a mapping at the top level")

    try:
        return Rules.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Rules validation failed:\n{e}") from e


def load_rules(path: Path) -> Rules:
    """
    Load and validate the rules file.
    Raises FileNotFoundError if file missing.
    Raises ValueError if schema invalid.
    """
    if not path.exists():
        raise FileNotFoundError(f"Rules file not found at: {path}")

    with open(path) as f:
        return parse_rules(f.read())
