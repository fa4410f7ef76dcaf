from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _running_in_docker() -> bool:
    """Best-effort check for container execution.

    Used only to pick sensible defaults. Environment variables always win.
    """
    return Path("/.dockerenv").exists() or os.environ.get("RUNNING_IN_DOCKER") == "1"


def _default_database_url() -> str:
    # Keep the local database next to the backend so dev runs don't scatter files.
    if _running_in_docker():
        return "sqlite:////app/out/route_pricing.db"
    return f"sqlite:///{Path(__file__).resolve().parents[1] / 'out' / 'route_pricing.db'}"


class Settings(BaseSettings):
    """Validated settings (env-driven), keeping config out of code for easy extension."""

    model_config = SettingsConfigDict(
        # Support both "repo root/.env" (docker compose) and "backend/.env" (local dev)
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: str = Field(default_factory=_default_database_url, alias="DATABASE_URL")
    # Applied as the driver's connect/busy timeout so no store call blocks forever.
    store_timeout_s: float = Field(default=5.0, ge=0.1, le=120.0, alias="STORE_TIMEOUT_S")

    out_dir: str = Field(default="/app/out", alias="OUT_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    grid_size_degrees: float = Field(default=0.0015, gt=0.0, le=1.0, alias="GRID_SIZE_DEGREES")
    local_timezone: str = Field(default="Asia/Baghdad", alias="LOCAL_TIMEZONE")
    candidate_limit: int = Field(default=100, ge=1, le=1000, alias="CANDIDATE_LIMIT")
    confidence_staleness_tolerance: float = Field(
        default=0.01,
        ge=0.0,
        le=1.0,
        alias="CONFIDENCE_STALENESS_TOLERANCE",
    )

    # Submission price policy (integer currency units).
    price_min: int = Field(default=1_000, ge=1, alias="PRICE_MIN")
    price_max: int = Field(default=200_000, ge=1, alias="PRICE_MAX")

    session_signing_secret: str = Field(default="", alias="SESSION_SIGNING_SECRET")
    test_auth_bypass_enabled: bool = Field(default=False, alias="TEST_AUTH_BYPASS_ENABLED")
    test_auth_bypass_driver_id: str = Field(
        default="11111111-1111-4111-8111-111111111111",
        alias="TEST_AUTH_BYPASS_DRIVER_ID",
    )
    admin_api_token: str = Field(default="", alias="ADMIN_API_TOKEN")
    cron_secret: str = Field(default="", alias="CRON_SECRET")

    # Remote aggregation job (refresh procedures exposed over HTTP).
    aggregation_base_url: str = Field(default="http://localhost:54321/rest/v1/rpc", alias="AGGREGATION_BASE_URL")
    aggregation_api_key: str = Field(default="", alias="AGGREGATION_API_KEY")
    aggregation_timeout_s: float = Field(default=60.0, ge=1.0, le=600.0, alias="AGGREGATION_TIMEOUT_S")
    aggregation_max_retries: int = Field(default=3, ge=1, le=10, alias="AGGREGATION_MAX_RETRIES")

    @model_validator(mode="after")
    def _check_price_bounds(self) -> "Settings":
        if self.price_min > self.price_max:
            raise ValueError("PRICE_MIN must not exceed PRICE_MAX")
        self.local_timezone = str(self.local_timezone or "Asia/Baghdad").strip() or "Asia/Baghdad"
        return self


settings = Settings()
