"""Centralised application configuration using Pydantic settings."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_PROJECT_ROOT = Path(__file__).resolve().parents[1]
_DEFAULT_DB_PATH = _PROJECT_ROOT / "database" / "risk_register.db"


class AnalysisSettings(BaseModel):
    """Thresholds handed to the analysis engines by their callers."""

    similarity_suggest_threshold: float = 0.7
    duplicate_cause_threshold: float = 0.85
    stale_risk_days: int = 60
    owner_overload_threshold: int = 7
    cause_trend_window_days: int = 90


class AppConfig(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    app_env: str = Field(default="development", alias="APP_ENV")
    database_url: str = Field(  # type: ignore[assignment]
        default_factory=lambda: f"sqlite:///{_DEFAULT_DB_PATH.as_posix()}",
        alias="DATABASE_URL",
    )
    similarity_suggest_threshold: float = Field(default=0.7, alias="SIMILARITY_SUGGEST_THRESHOLD")
    duplicate_cause_threshold: float = Field(default=0.85, alias="DUPLICATE_CAUSE_THRESHOLD")
    stale_risk_days: int = Field(default=60, ge=1, alias="STALE_RISK_DAYS")
    owner_overload_threshold: int = Field(default=7, ge=1, alias="OWNER_OVERLOAD_THRESHOLD")
    cause_trend_window_days: int = Field(default=90, ge=1, alias="CAUSE_TREND_WINDOW_DAYS")

    @field_validator("database_url", mode="before")
    @classmethod
    def _fallback_to_default_path(cls, value: Optional[str]) -> str:
        if value and str(value).strip():
            return str(value)
        return f"sqlite:///{_DEFAULT_DB_PATH.as_posix()}"

    @field_validator("similarity_suggest_threshold", "duplicate_cause_threshold")
    @classmethod
    def _check_threshold(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError("similarity thresholds must lie between 0 and 1")
        return value

    @computed_field
    def environment(self) -> str:
        """Normalized environment name."""

        return self.app_env.lower()

    @computed_field
    def analysis(self) -> AnalysisSettings:
        """Return strongly-typed analysis thresholds."""

        return AnalysisSettings(
            similarity_suggest_threshold=self.similarity_suggest_threshold,
            duplicate_cause_threshold=self.duplicate_cause_threshold,
            stale_risk_days=self.stale_risk_days,
            owner_overload_threshold=self.owner_overload_threshold,
            cause_trend_window_days=self.cause_trend_window_days,
        )

    @computed_field
    def database_path(self) -> Optional[Path]:
        """Return the filesystem path for SQLite databases when available."""

        return _extract_sqlite_path(self.database_url)


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Load configuration, caching the result for reuse."""

    return AppConfig()  # type: ignore[call-arg]


def _extract_sqlite_path(database_url: str) -> Optional[Path]:
    parsed = urlparse(database_url)
    scheme = parsed.scheme or "sqlite"

    if scheme != "sqlite":
        return None

    if parsed.path in (":memory:", "/:memory:"):
        return None

    if parsed.netloc and not parsed.path:
        path = parsed.netloc
    else:
        path = parsed.path

    if not parsed.netloc:
        if path.startswith("//"):
            path = path[1:]
        elif path.startswith("/"):
            path = path[1:]
    else:
        path = f"{parsed.netloc}{path}"

    if not path:
        return None

    db_path = Path(path)
    if not db_path.is_absolute():
        db_path = (_PROJECT_ROOT / db_path).resolve()

    return db_path


__all__ = ["AnalysisSettings", "AppConfig", "get_config"]
