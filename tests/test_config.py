"""Configuration loading and validation."""
from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import AppConfig, get_config


@pytest.fixture(autouse=True)
def _clear_config_cache():
    get_config.cache_clear()
    yield
    get_config.cache_clear()


def test_defaults(monkeypatch):
    for name in ("APP_ENV", "DATABASE_URL", "SIMILARITY_SUGGEST_THRESHOLD",
                 "DUPLICATE_CAUSE_THRESHOLD", "STALE_RISK_DAYS"):
        monkeypatch.delenv(name, raising=False)

    config = get_config()

    assert config.environment == "development"
    assert config.analysis.similarity_suggest_threshold == 0.7
    assert config.analysis.duplicate_cause_threshold == 0.85
    assert config.analysis.stale_risk_days == 60
    assert config.database_path.name == "risk_register.db"
    assert get_config() is config


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("APP_ENV", "Production")
    monkeypatch.setenv("DUPLICATE_CAUSE_THRESHOLD", "0.9")
    monkeypatch.setenv("OWNER_OVERLOAD_THRESHOLD", "4")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'custom.db'}")

    config = get_config()

    assert config.environment == "production"
    assert config.analysis.duplicate_cause_threshold == 0.9
    assert config.analysis.owner_overload_threshold == 4
    assert config.database_path == tmp_path / "custom.db"


def test_memory_database_has_no_path():
    assert AppConfig(DATABASE_URL="sqlite:///:memory:").database_path is None


@pytest.mark.parametrize("value", ["1.5", "-0.1"])
def test_thresholds_must_be_probabilities(monkeypatch, value):
    monkeypatch.setenv("SIMILARITY_SUGGEST_THRESHOLD", value)
    with pytest.raises(ValidationError):
        AppConfig()


def test_blank_database_url_falls_back_to_default(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "  ")
    assert AppConfig().database_url.endswith("database/risk_register.db")
