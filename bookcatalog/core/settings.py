from __future__ import annotations

import os
from functools import lru_cache

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "y", "on"}


def _as_list(value: str | None, default: list[str]) -> list[str]:
    if value is None:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


class AppSettings(BaseModel):
    """Runtime configuration for the catalog service."""

    environment: str = Field(default="production", alias="APP_ENV")
    database_url: str = Field(default="sqlite:///./books.db", alias="DATABASE_URL")
    db_connect_retries: int = Field(default=3, alias="DB_CONNECT_RETRIES", ge=1)
    db_connect_retry_delay_seconds: float = Field(default=2.0, alias="DB_CONNECT_RETRY_DELAY_SECONDS", ge=0)
    db_timeout_seconds: float = Field(default=30.0, alias="DB_TIMEOUT_SECONDS", gt=0)
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    cors_origins: list[str] = Field(default_factory=lambda: ["*"], alias="CORS_ORIGINS")
    rate_limit_enabled: bool = Field(default=True, alias="RATE_LIMIT_ENABLED")
    rate_limit_requests: int = Field(default=100, alias="RATE_LIMIT_REQUESTS", ge=1)
    rate_limit_window_seconds: int = Field(default=15 * 60, alias="RATE_LIMIT_WINDOW_SECONDS", ge=1)
    trust_proxy: bool = Field(default=False, alias="TRUST_PROXY")
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8080, alias="PORT")

    model_config = {"populate_by_name": True}

    @field_validator("environment", mode="before")
    @classmethod
    def _normalize_environment(cls, value: str | None) -> str:
        if not value:
            return "production"
        return value.strip().lower()

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: str | None) -> str:
        if not value:
            return "INFO"
        return value.strip().upper()

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


@lru_cache
def get_app_settings() -> AppSettings:
    """Load service configuration from environment variables (and a .env file)."""
    load_dotenv()
    return AppSettings(
        environment=os.getenv("APP_ENV", "production"),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./books.db"),
        db_connect_retries=int(os.getenv("DB_CONNECT_RETRIES", "3")),
        db_connect_retry_delay_seconds=float(os.getenv("DB_CONNECT_RETRY_DELAY_SECONDS", "2")),
        db_timeout_seconds=float(os.getenv("DB_TIMEOUT_SECONDS", "30")),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        cors_origins=_as_list(os.getenv("CORS_ORIGINS"), default=["*"]),
        rate_limit_enabled=_as_bool(os.getenv("RATE_LIMIT_ENABLED"), default=True),
        rate_limit_requests=int(os.getenv("RATE_LIMIT_REQUESTS", "100")),
        rate_limit_window_seconds=int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", str(15 * 60))),
        trust_proxy=_as_bool(os.getenv("TRUST_PROXY"), default=False),
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8080")),
    )
