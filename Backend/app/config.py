# app/config.py
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from services.seed_errors import ConfigurationError

# Backend/.env; this file lives in Backend/app/config.py → parents[1] = Backend
ENV_FILE = Path(__file__).resolve().parents[1] / ".env"
load_dotenv(ENV_FILE, override=False)

DEFAULT_REQUEST_TIMEOUT_MS = 10_000
DEFAULT_SEED_MAX_PER_SOURCE = 200
DEFAULT_SEED_CONCURRENCY = 3


class Settings(BaseSettings):
    # ---- App / Infra ----
    APP_VERSION: str = "1.0.0"
    DATABASE_URL: Optional[str] = None
    DB_POOL_MIN_SIZE: int = 1
    DB_POOL_MAX_SIZE: int = 4
    STATEMENT_TIMEOUT_MS: int = 30_000

    # ---- Seed pipeline ----
    REQUEST_TIMEOUT_MS: int = DEFAULT_REQUEST_TIMEOUT_MS
    SEED_MAX_PER_SOURCE: int = DEFAULT_SEED_MAX_PER_SOURCE
    SEED_CONCURRENCY: int = DEFAULT_SEED_CONCURRENCY
    SOURCES_FILE: str = "sources.json"

    # ---- Admin writes ----
    SEED_API_KEY: str = "dev-key-change-me"

    # ---- HTTP ----
    CORS_ORIGINS: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"]
    )

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def _blank_dsn_is_missing(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("REQUEST_TIMEOUT_MS", mode="before")
    @classmethod
    def _positive_timeout(cls, value: object) -> int:
        return _positive_or_default(value, DEFAULT_REQUEST_TIMEOUT_MS)

    @field_validator("SEED_MAX_PER_SOURCE", mode="before")
    @classmethod
    def _positive_seed_max(cls, value: object) -> int:
        return _positive_or_default(value, DEFAULT_SEED_MAX_PER_SOURCE)

    @field_validator("SEED_CONCURRENCY", mode="before")
    @classmethod
    def _positive_concurrency(cls, value: object) -> int:
        return _positive_or_default(value, DEFAULT_SEED_CONCURRENCY)

    @property
    def sources_file_path(self) -> Path:
        """Bootstrap file, relative paths resolved against the working directory."""
        path = Path(self.SOURCES_FILE)
        return path if path.is_absolute() else Path.cwd() / path


def _positive_or_default(value: object, default: int) -> int:
    # Garbage or non-positive env values fall back instead of failing startup.
    try:
        number = int(float(value))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def require_database_url(cfg: Optional[Settings] = None) -> str:
    """
    Runtime check with a clear message when the store DSN is missing.
    """
    dsn = (cfg or get_settings()).DATABASE_URL
    if not dsn:
        raise ConfigurationError(
            f"DATABASE_URL must be set (environment or {ENV_FILE})."
        )
    return dsn


settings = get_settings()
