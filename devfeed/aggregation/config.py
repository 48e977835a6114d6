"""Configuration for the aggregation service."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AggregationConfig(BaseSettings):
    """Settings for fan-out, aggregate caching and error reporting.

    Settings can be overridden via environment variables prefixed with
    AGGREGATION_ (e.g. AGGREGATION_FETCH_LIMIT=50).
    """

    model_config = SettingsConfigDict(
        env_prefix="AGGREGATION_",
        case_sensitive=False,
        extra="ignore",
    )

    cache_ttl_seconds: float = Field(
        default=300.0,
        ge=0.0,
        description="TTL for cached aggregate results (0 = no caching)",
    )
    source_error_max_age_seconds: float = Field(
        default=3600.0,
        gt=0.0,
        description="Age after which a per-source error record is treated as cleared",
    )
    fetch_limit: int = Field(
        default=30,
        ge=1,
        le=100,
        description="Items requested from each source per fan-out",
    )
    fetch_timeout_seconds: float | None = Field(
        default=None,
        gt=0.0,
        description="Upper bound on a single source's fetch; unset = no bound",
    )
