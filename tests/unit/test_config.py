"""
Tests for rules loading and startup validation.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from src.api import deps
from src.app_shell.config import validate_ops_rules
from src.core.errors import ConfigurationError
from src.rules.loader import load_rules, parse_rules, resolve_rules_path

RULES_PATH = Path(__file__).resolve().parents[2] / "rules.yaml"
ENV = {"ZTA_HASH_SECRET": "s3cret", "ZTA_JWT_SECRET": "jwt-s3cret"}


@pytest.fixture
def rules():  # type: ignore[no-untyped-def]
    return load_rules(RULES_PATH)


class TestRulesLoader:
    def test_project_rules_load(self, rules) -> None:  # type: ignore[no-untyped-def]
        assert rules.project.slug == "zero-trust-analytics"
        assert rules.analytics.dedupe.window_seconds == 5
        assert rules.analytics.realtime.trend_threshold == pytest.approx(0.10)
        assert rules.shares.default_allowed_periods == ["7d", "30d", "90d"]
        assert rules.imports.batch_size == 1000
        assert "ZTA_JWT_SECRET" in rules.ops.required_env

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_rules(tmp_path / "missing.yaml")

    def test_bad_yaml(self) -> None:
        with pytest.raises(ValueError, match="YAML"):
            parse_rules("project: [unclosed")

    def test_schema_violation(self) -> None:
        with pytest.raises(ValueError, match="validation"):
            parse_rules("project:\n  slug: x\n")

    def test_rules_path_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ZTA_RULES_PATH", "/etc/zta/rules.yaml")
        assert resolve_rules_path() == Path("/etc/zta/rules.yaml")


class TestComponentConfigs:
    def test_rules_flow_into_component_configs(self, rules) -> None:  # type: ignore[no-untyped-def]
        assert deps.dedupe_config(rules).window_seconds == 5
        assert deps.realtime_config(rules).max_window_minutes == 1440
        assert "email" in deps.ingest_config(rules).forbidden_fields
        assert deps.shares_config(rules).expiry_presets["30d"] == 30
        assert deps.imports_config(rules).max_retries == 3
        assert deps.stats_config(rules).reporting_timezone == "UTC"


class TestValidateOpsRules:
    def test_missing_hash_secret(self, rules, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
        with pytest.raises(ConfigurationError) as exc:
            validate_ops_rules(rules, tmp_path, environ={})
        assert "ZTA_HASH_SECRET" in exc.value.message

    def test_blank_hash_secret(self, rules, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
        with pytest.raises(ConfigurationError):
            validate_ops_rules(rules, tmp_path, environ={"ZTA_HASH_SECRET": "   "})

    def test_ok_creates_data_dir(self, rules, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
        data_dir = tmp_path / "data"
        validate_ops_rules(rules, data_dir, environ=ENV)
        assert data_dir.is_dir()

    def test_missing_jwt_secret(self, rules, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
        with pytest.raises(ConfigurationError) as exc:
            validate_ops_rules(rules, tmp_path, environ={"ZTA_HASH_SECRET": "s3cret"})
        assert exc.value.code == "missing_env"
        assert "ZTA_JWT_SECRET" in exc.value.message

    def test_unknown_timezone(self, rules, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
        stats = rules.stats.model_copy(update={"reporting_timezone": "Mars/Olympus_Mons"})
        with pytest.raises(ConfigurationError) as exc:
            validate_ops_rules(rules.model_copy(update={"stats": stats}), tmp_path, environ=ENV)
        assert exc.value.code == "invalid_timezone"

    def test_hasher_singleton_fails_closed(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("ZTA_HASH_SECRET", raising=False)
        monkeypatch.setenv("ZTA_RULES_PATH", str(RULES_PATH))
        deps.reset_singletons()
        try:
            with pytest.raises(ConfigurationError):
                deps.get_hasher()
        finally:
            deps.reset_singletons()
