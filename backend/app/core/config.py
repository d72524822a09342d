from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

STORAGE_BACKENDS = {"database", "json"}


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/cashflow.db",
        alias="DATABASE_URL",
    )
    storage_backend: str = Field(default="database", alias="STORAGE_BACKEND")
    transactions_file: Path = Field(
        default=Path("data/transactions.json"),
        alias="TRANSACTIONS_FILE",
    )
    transactions_list_limit: int = Field(default=20, alias="TRANSACTIONS_LIST_LIMIT")
    log_file: Path = Field(default=Path("logs/cashflow.log"), alias="LOG_FILE")
    cors_allow_origins: str = Field(default="*", alias="CORS_ALLOW_ORIGINS")

    # Per-client rate limiting
    rate_limit_enabled: bool = Field(default=True, alias="RATE_LIMIT_ENABLED")
    rate_limit_max_requests: int = Field(default=10, alias="RATE_LIMIT_MAX_REQUESTS")
    rate_limit_window_seconds: float = Field(default=60.0, alias="RATE_LIMIT_WINDOW_SECONDS")
    rate_limit_block_seconds: float = Field(default=3600.0, alias="RATE_LIMIT_BLOCK_SECONDS")
    rate_limit_max_entries: int = Field(default=5000, alias="RATE_LIMIT_MAX_ENTRIES")
    rate_limit_sweep_interval_seconds: float = Field(
        default=300.0,
        alias="RATE_LIMIT_SWEEP_INTERVAL_SECONDS",
    )

    version: str = Field(default_factory=lambda: Settings._load_version())

    @staticmethod
    def _load_version() -> str:
        version_env = os.getenv("VERSION")
        if version_env:
            return version_env
        version_file = Path("VERSION")
        if version_file.exists():
            return version_file.read_text(encoding="utf-8").strip()
        return "0.0.0"

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.cors_allow_origins.split(",") if origin.strip()]

    @field_validator("log_file", mode="before")
    @classmethod
    def _validate_log_file(cls, value: Path | str) -> Path:
        path = Path(value)
        if not path.parent.exists():
            path.parent.mkdir(parents=True, exist_ok=True)
        return path

    @field_validator("storage_backend", mode="before")
    @classmethod
    def _validate_storage_backend(cls, value: str | None) -> str:
        if not value:
            return "database"
        normalized = str(value).strip().lower()
        if normalized not in STORAGE_BACKENDS:
            return "database"
        return normalized

    @field_validator("transactions_list_limit", mode="before")
    @classmethod
    def _validate_list_limit(cls, value: int | str | None) -> int:
        if value is None:
            return 20
        return max(int(value), 1)

    @field_validator("database_url", mode="before")
    @classmethod
    def _validate_database_url(cls, value: str | None) -> str:
        if not value:
            value = "sqlite:///./data/cashflow.db"

        normalized = str(value)
        if normalized.startswith("postgres://"):
            normalized = normalized.replace("postgres://", "postgresql://", 1)
        if normalized.startswith("postgresql://") and "+asyncpg" not in normalized:
            normalized = normalized.replace("postgresql://", "postgresql+asyncpg://", 1)
        if normalized.startswith("sqlite://") and "+aiosqlite" not in normalized:
            normalized = normalized.replace("sqlite://", "sqlite+aiosqlite://", 1)

        return normalized


@lru_cache
def get_settings() -> Settings:
    """Cached settings accessor."""

    return Settings()
