from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Limits (10 req/s spread over a minute and an hour)
    max_per_minute: int = 600
    max_per_hour: int = 36000

    # Window geometry
    minute_seconds: int = 60
    hour_seconds: int = 3600

    # Store
    lock_stripes: int = Field(default=64, gt=0)
    max_identities: int | None = Field(default=None, gt=0)
    idle_ttl_seconds: int | None = Field(default=None, gt=0)

    # App
    log_level: str = "INFO"

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        if isinstance(v, str):
            return v.upper()
        return v


def get_settings() -> Settings:
    return Settings()
