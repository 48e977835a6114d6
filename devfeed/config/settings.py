"""Runtime configuration for devfeed, read from the environment and an optional .env file."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the devfeed application.

    Each field maps to the upper-cased environment variable of the same name.
    Prefix is not used to allow standard env var names (e.g., GITHUB_API_KEYS).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    debug: bool = False

    # GitHub (comma-separated for multiple tokens with rotation)
    github_api_keys: str | None = None

    # Rate limits (requests per minute, per client instance)
    hackernews_rate_limit: int = Field(default=60, ge=1)
    devto_rate_limit: int = Field(default=60, ge=1)
    github_rate_limit: int = Field(default=60, ge=1)

    # HTTP retry configuration
    http_timeout_seconds: float = Field(default=10.0, gt=0.0, le=120.0)
    max_http_attempts: int = Field(default=3, ge=1, le=10)
    http_retry_base_delay: float = Field(default=1.0, ge=0.0, le=30.0)
    max_backoff_seconds: float = Field(default=30.0, ge=0.0, le=300.0)

    # Per-client response cache
    cache_ttl_seconds: float = Field(default=300.0, ge=0.0)

    # Observability
    metrics_port: int = 8000

    @property
    def is_production(self) -> bool:
        """True when ENVIRONMENT is set to production."""
        return self.environment == "production"

    @property
    def github_configured(self) -> bool:
        """Check if at least one GitHub token is configured."""
        return bool(self.github_api_keys and self.github_api_keys.strip())


@lru_cache
def get_settings() -> Settings:
    """
    Return the process-wide Settings.

    The environment is read once; tests reset it with get_settings.cache_clear().
    """
    return Settings()
