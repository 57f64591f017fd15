"""Settings resolution tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from housekeeping import settings as settings_module


def test_db_path_prefers_explicit_env(monkeypatch) -> None:
    monkeypatch.setenv("HOUSEKEEPING_DB_PATH", "/tmp/custom-housekeeping.db")
    monkeypatch.delenv("HOUSEKEEPING_DATABASE_URL", raising=False)
    settings = settings_module.Settings()
    assert settings.db_path == Path("/tmp/custom-housekeeping.db")
    assert settings.db_url == "sqlite:////tmp/custom-housekeeping.db"


def test_database_url_wins_over_path(monkeypatch) -> None:
    monkeypatch.setenv("HOUSEKEEPING_DB_PATH", "/tmp/ignored.db")
    monkeypatch.setenv("HOUSEKEEPING_DATABASE_URL", "postgresql+psycopg://u:p@db/housekeeping")
    assert settings_module.Settings().db_url == "postgresql+psycopg://u:p@db/housekeeping"


def test_defaults(monkeypatch) -> None:
    for name in (
        "HOUSEKEEPING_DB_PATH",
        "HOUSEKEEPING_DEFAULT_STAY_OVER_INTERVAL",
        "HOUSEKEEPING_DEFAULT_DEEP_CLEANING_INTERVAL",
        "HOUSEKEEPING_REJECTION_MIN_LENGTH",
        "HOUSEKEEPING_RATE_POLICY",
        "HOUSEKEEPING_RELEASE_REJECTED_TASKS",
        "HOUSEKEEPING_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = settings_module.Settings()
    assert settings.db_path == Path("./data/housekeeping.db")
    assert settings.default_stay_over_interval == 3
    assert settings.default_deep_cleaning_interval == 11
    assert settings.rejection_min_length == 10
    assert settings.rate_policy == "settlement"
    assert settings.release_rejected_tasks is True
    assert settings.log_level == "INFO"


def test_bool_and_int_parsing(monkeypatch) -> None:
    monkeypatch.setenv("HOUSEKEEPING_RELEASE_REJECTED_TASKS", "no")
    monkeypatch.setenv("HOUSEKEEPING_DEFAULT_DEEP_CLEANING_INTERVAL", "30")
    settings = settings_module.Settings()
    assert settings.release_rejected_tasks is False
    assert settings.default_deep_cleaning_interval == 30


def test_invalid_values_raise(monkeypatch) -> None:
    monkeypatch.setenv("HOUSEKEEPING_RATE_POLICY", "whenever")
    monkeypatch.setenv("HOUSEKEEPING_REJECTION_MIN_LENGTH", "ten")
    settings = settings_module.Settings()
    with pytest.raises(ValueError):
        settings.rate_policy
    with pytest.raises(ValueError):
        settings.rejection_min_length
