"""Environment-driven settings for the API, workers and scripts."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Giveaway engine settings.

    Every field maps to the upper-cased environment variable of the same
    name, e.g. ``CLAIM_DEADLINE_DAYS=14``.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_env: Literal["development", "testing", "staging", "production"] = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    log_level: str = "INFO"
    log_format: Literal["text", "json"] = "text"

    # Claim links are built as {site_url}/claim/{token}
    site_url: str = "http://localhost:3000"

    oracle_dsn: str = "localhost:1521/FREEPDB1"
    oracle_user: str = "giveaways"
    oracle_password: str = "Giveaways_Dev_2026!"
    oracle_pool_min: int = Field(2, ge=1)
    oracle_pool_max: int = Field(10, ge=1)
    oracle_pool_increment: int = Field(1, ge=1)

    # Shared entry rate-limit counters; blank keeps them in process memory
    redis_url: str = "redis://localhost:6379/0"

    jwt_secret_key: str = "9f1c0e7d2b4a48a1b6d35e0c7a2f9e14"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = Field(60, ge=1)

    cors_origins: str = "*"

    # Coarse per-minute request throttle, by caller class
    rate_limit_anonymous: int = Field(30, ge=1)
    rate_limit_user: int = Field(100, ge=1)
    rate_limit_admin: int = Field(500, ge=1)

    claim_deadline_days: int = Field(7, ge=1)
    entry_rate_limit: int = Field(5, ge=1)
    entry_rate_window_minutes: int = Field(60, ge=1)
    notifications_dev_mode: bool = True

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def is_testing(self) -> bool:
        return self.app_env == "testing"

    @property
    def cors_origin_list(self) -> list[str]:
        if self.cors_origins.strip() == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
