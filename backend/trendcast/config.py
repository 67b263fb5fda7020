# trendcast/config.py
from functools import lru_cache
from typing import List

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # environment: "dev" for running the app locally, "test" for pytest
    ENV: str = "dev"

    DATABASE_URL: str | None = None
    DB_APP_ROLE: str | None = None
    DB_REQUIRE_SSL: bool = True

    TRUSTED_HOSTS: List[str] = Field(
        default_factory=lambda: [
            "localhost",
            "127.0.0.1",
            "testserver",
            "test",
        ]
    )
    LOG_LEVEL: str = "INFO"

    # --- Cache store ---
    # "memory" keeps entries in this process only; "redis" shares them across workers.
    CACHE_PROVIDER: str = "memory"
    REDIS_URL: str | None = None

    # --- Shared secrets for the job/cron endpoints ---
    # Left unset, the matching endpoint answers 503 instead of running unauthenticated.
    WARMUP_SECRET: str | None = None
    CRON_SECRET: str | None = None

    # --- Forecast pipeline ---
    FORECAST_HORIZON_DAYS: int = 30
    FORECAST_FRESH_TTL_SECONDS: int = 24 * 60 * 60
    FORECAST_STALE_TTL_SECONDS: int = 7 * 24 * 60 * 60
    FORECAST_CALL_TIMEOUT_SECONDS: float = 60.0
    WARMUP_JOB_TIMEOUT_SECONDS: float = 300.0
    WARMUP_ERROR_TTL_SECONDS: int = 10 * 60
    WARMUP_DEBUG_TTL_SECONDS: int = 24 * 60 * 60
    # No default: the reaper stays off until an operator picks a lease length.
    WARMUP_STUCK_JOB_TIMEOUT_MINUTES: int | None = None

    # --- Evaluation ---
    EVALUATION_BUFFER_DAYS: int = 2
    EVALUATION_BATCH_SIZE: int = 100

    # --- Scheduler ---
    # Off by default; an external scheduler can call the cron/job endpoints instead.
    SCHEDULER_ENABLED: bool = False
    # IANA timezone name used by APScheduler (e.g., "UTC", "America/New_York").
    SCHEDULER_TZ: str = "UTC"
    # Optional dedicated job store URL. If None, the application database is used.
    SCHEDULER_DB_URL: str | None = None
    WARMUP_DRAIN_INTERVAL_SECONDS: int = 60
    WARMUP_DRAIN_MAX_JOBS: int = 5

    @model_validator(mode="after")
    def _check_cache_provider(self):
        provider = (self.CACHE_PROVIDER or "memory").lower()
        if provider not in ("memory", "redis"):
            raise ValueError(f"CACHE_PROVIDER must be 'memory' or 'redis', got {self.CACHE_PROVIDER!r}")
        self.CACHE_PROVIDER = provider
        if provider == "redis" and not self.REDIS_URL:
            raise ValueError("REDIS_URL must be set when CACHE_PROVIDER is 'redis'.")
        return self

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
