import os

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, Field


class Settings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Feature switches
    perf_hardening: bool = Field(default=False, alias="PERF_HARDENING")
    single_flight: bool = Field(default=False, alias="SINGLE_FLIGHT")
    debug: bool = Field(default=False, alias="MINIMONDAY_DEBUG")

    # Cache Configuration
    cache_max_size: int = Field(default=100, ge=1, alias="CACHE_MAX_SIZE")
    cache_ttl_ms: int = Field(default=30_000, gt=0, alias="CACHE_TTL_MS")

    # Circuit Breaker Configuration
    breaker_failure_threshold: int = Field(
        default=5, ge=1, alias="BREAKER_FAILURE_THRESHOLD"
    )
    breaker_reset_timeout_ms: int = Field(
        default=60_000, ge=0, alias="BREAKER_RESET_TIMEOUT_MS"
    )
    breaker_success_threshold: int = Field(
        default=2, ge=1, alias="BREAKER_SUCCESS_THRESHOLD"
    )
    breaker_window_ms: int = Field(default=30_000, gt=0, alias="BREAKER_WINDOW_MS")

    # Retry Configuration
    retry_max_retries: int = Field(default=3, ge=0, alias="RETRY_MAX_RETRIES")
    retry_initial_delay_ms: int = Field(
        default=1_000, ge=0, alias="RETRY_INITIAL_DELAY_MS"
    )
    retry_max_delay_ms: int = Field(default=30_000, ge=0, alias="RETRY_MAX_DELAY_MS")
    retry_backoff_multiplier: float = Field(
        default=2.0, ge=1.0, alias="RETRY_BACKOFF_MULTIPLIER"
    )


def load_settings(env_file: str | os.PathLike[str] | None = None) -> Settings:
    """
    Build settings from the process environment.

    Variables from env_file (default: the nearest .env above the working
    directory) are loaded first; variables already set in the environment win.
    """
    load_dotenv(env_file or find_dotenv(usecwd=True))
    return Settings.model_validate(dict(os.environ))
