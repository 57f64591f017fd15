"""Application settings loaded from environment variables."""

from __future__ import annotations

import os
from pathlib import Path

RATE_POLICIES = ("settlement", "completion")


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _bool_env(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Settings:
    """Runtime settings for the service."""

    @property
    def db_path(self) -> Path:
        return Path(os.environ.get("HOUSEKEEPING_DB_PATH", "./data/housekeeping.db"))

    @property
    def db_url(self) -> str:
        configured = os.environ.get("HOUSEKEEPING_DATABASE_URL")
        if configured:
            return configured
        return f"sqlite:///{self.db_path}"

    @property
    def api_token(self) -> str:
        return os.environ.get("HOUSEKEEPING_API_TOKEN", "dev-token")

    @property
    def default_stay_over_interval(self) -> int:
        return _int_env("HOUSEKEEPING_DEFAULT_STAY_OVER_INTERVAL", 3)

    @property
    def default_deep_cleaning_interval(self) -> int:
        return _int_env("HOUSEKEEPING_DEFAULT_DEEP_CLEANING_INTERVAL", 11)

    @property
    def default_timezone(self) -> str:
        return os.environ.get("HOUSEKEEPING_DEFAULT_TIMEZONE", "UTC")

    @property
    def rejection_min_length(self) -> int:
        return _int_env("HOUSEKEEPING_REJECTION_MIN_LENGTH", 10)

    @property
    def rate_policy(self) -> str:
        policy = os.environ.get("HOUSEKEEPING_RATE_POLICY", "settlement").strip().lower()
        if policy not in RATE_POLICIES:
            raise ValueError(f"HOUSEKEEPING_RATE_POLICY must be one of {', '.join(RATE_POLICIES)}")
        return policy

    @property
    def release_rejected_tasks(self) -> bool:
        return _bool_env("HOUSEKEEPING_RELEASE_REJECTED_TASKS", True)

    @property
    def log_level(self) -> str:
        return os.environ.get("HOUSEKEEPING_LOG_LEVEL", "INFO").upper()


settings = Settings()
