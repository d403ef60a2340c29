"""Application settings loaded from environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration sourced from environment variables and .env."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    DATABASE_URL: str
    INTERNAL_API_KEY: SecretStr | None = None
    HOST: str = "0.0.0.0"
    PORT: int = Field(default=8000, ge=1, le=65535)
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    LOG_FORMAT: Literal["json", "text"] = "text"
    LOG_FILE: Path | None = None
    LOG_FILE_MAX_BYTES: int = Field(default=10_485_760, ge=1)
    LOG_FILE_BACKUP_COUNT: int = Field(default=5, ge=1)
    ANTHROPIC_API_KEY: SecretStr | None = None
    ANTHROPIC_BASE_URL: str = "https://api.anthropic.com"
    ANTHROPIC_MODEL: str = "claude-sonnet-4-20250514"
    GENERATOR_TIMEOUT_SECONDS: float = Field(default=120.0, gt=0)
    GENERATION_MAX_RETRIES: int = Field(default=1, ge=0)
    GENERATION_RETRY_DELAY_SECONDS: float = Field(default=2.0, ge=0)
    SERVICE_BATCH_SIZE: int = Field(default=5, ge=1)
    SERVICE_AREA_BATCH_SIZE: int = Field(default=10, ge=1)
    BUILD_RUN_TIMEOUT_SECONDS: float = Field(default=300.0, gt=0)
    STALE_BUILD_THRESHOLD_SECONDS: int = Field(default=300, ge=1)
    GBP_REVIEWS_BASE_URL: str = "https://mybusiness.googleapis.com/v4"
    REVIEWS_TIMEOUT_SECONDS: float = Field(default=15.0, gt=0)
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_JOBSTORE_URL: str = "sqlite:///./scheduler-jobs.sqlite"
    SCHEDULER_STALE_BUILD_SWEEP_INTERVAL_SECONDS: int = Field(default=60, ge=1)
    SHUTDOWN_GRACE_PERIOD_SECONDS: int = Field(default=30, ge=1)

    @field_validator("LOG_FILE", mode="before")
    @classmethod
    def parse_log_file(cls, value: object) -> object:
        if value in (None, ""):
            return None
        return value

    @field_validator("INTERNAL_API_KEY", "ANTHROPIC_API_KEY", mode="before")
    @classmethod
    def parse_optional_secret(cls, value: object) -> object:
        if value in (None, ""):
            return None
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]
