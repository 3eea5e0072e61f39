"""Application configuration via pydantic settings."""

from functools import lru_cache
from pathlib import Path

from typing import Any

from pydantic import Field
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Typed application configuration."""

    app_env: str = Field("local", alias="APP_ENV")
    app_name: str = "Care Plan Medication API"
    api_v1_prefix: str = "/api/v1"

    database_url: str = Field(..., alias="DATABASE_URL")
    sync_database_url: str | None = Field(default=None, alias="SYNC_DATABASE_URL")

    redis_url: str | None = Field(default=None, alias="REDIS_URL")
    dose_queue_name: str = Field(
        "careplan:dose-generation", alias="DOSE_QUEUE_NAME"
    )
    dose_queue_send_attempts: int = Field(3, ge=1, alias="DOSE_QUEUE_SEND_ATTEMPTS")

    schedule_timezone: str = Field("UTC", alias="SCHEDULE_TIMEZONE")
    dose_horizon_days: int = Field(7, ge=1, alias="DOSE_HORIZON_DAYS")
    weekly_dose_time: str = Field("08:00", alias="WEEKLY_DOSE_TIME")
    dose_batch_size: int = Field(25, ge=1, le=25, alias="DOSE_BATCH_SIZE")
    dose_generation_idempotent: bool = Field(
        default=False, alias="DOSE_GENERATION_IDEMPOTENT"
    )
    sync_dose_generation: bool = Field(default=True, alias="SYNC_DOSE_GENERATION")

    cors_allow_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:5173"],
        alias="CORS_ALLOW_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=False, alias="CORS_ALLOW_CREDENTIALS")

    model_config = SettingsConfigDict(
        env_file=Path(__file__).resolve().parents[3] / ".env",
        case_sensitive=False,
    )

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("weekly_dose_time")
    @classmethod
    def _check_weekly_time(cls, value: str) -> str:
        hours, _, minutes = value.partition(":")
        if not (hours.isdigit() and minutes.isdigit()):
            raise ValueError("WEEKLY_DOSE_TIME must use HH:MM")
        if int(hours) > 23 or int(minutes) > 59:
            raise ValueError("WEEKLY_DOSE_TIME must use HH:MM")
        return value


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""
    return Settings()  # type: ignore[call-arg]
