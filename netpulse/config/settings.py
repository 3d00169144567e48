"""
NetPulse Request Analytics
Centralized Configuration Management

Pydantic settings with environment variable support, validation, and type
safety for the storage layer, the medallion pipeline, and observability.
"""

from functools import lru_cache
from typing import List, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


PERIOD_TYPES = ["1min", "5min", "15min", "30min", "1h", "4h", "1d"]


class DatabaseSettings(BaseSettings):
    """Embedded SQLite Database Configuration"""

    model_config = SettingsConfigDict(env_prefix="NETPULSE_DB_")

    path: str = Field(default="./data/netpulse.db", description="SQLite database file")
    url: Optional[str] = Field(default=None, description="Full SQLAlchemy URL (overrides path)")
    busy_timeout_seconds: float = Field(default=30.0, description="Seconds to wait on a locked database")
    echo: bool = Field(default=False, description="Echo SQL queries")

    def get_url(self) -> str:
        """Async database URL for aiosqlite - uses url if set, otherwise builds from path"""
        if self.url:
            return self.url
        return f"sqlite+aiosqlite:///{self.path}"


class PipelineSettings(BaseSettings):
    """Bronze -> Silver -> Gold Pipeline Configuration"""

    model_config = SettingsConfigDict(env_prefix="NETPULSE_PIPELINE_")

    # Transform queue
    queue_maxsize: int = Field(default=0, description="Transform queue bound (0 = unbounded)")

    # Enrichment heuristics
    third_party_markers: List[str] = Field(
        default=["google", "facebook", "twitter", "analytics", "cdn"],
        description="Hostname substrings that mark a third-party domain",
    )
    cdn_markers: List[str] = Field(
        default=["cdn", "cloudfront", "akamai", "fastly", "cloudflare", "jsdelivr", "unpkg"],
        description="Hostname substrings that mark a CDN domain",
    )
    performance_max_duration_ms: float = Field(
        default=5000.0, description="Duration at which the performance score reaches 0"
    )
    large_response_bytes: int = Field(
        default=1_000_000, description="Uncached responses above this size lose quality points"
    )

    # Downstream aggregation
    ohlc_period_types: List[str] = Field(
        default=list(PERIOD_TYPES), description="Granularities refreshed by the scheduler"
    )
    quality_period_type: str = Field(default="1h", description="Bucket width for quality slices")
    scheduler_interval_seconds: float = Field(default=5.0, description="Aggregation tick interval")
    outbox_batch_size: int = Field(default=500, description="Ready events claimed per tick")
    gold_window_days: int = Field(default=1, description="Days re-summarized by the daily Gold job")

    @field_validator("ohlc_period_types")
    @classmethod
    def validate_period_types(cls, v: List[str]) -> List[str]:
        """Validate configured granularities"""
        unknown = [p for p in v if p not in PERIOD_TYPES]
        if unknown:
            raise ValueError(f"Unknown period types {unknown}; allowed: {PERIOD_TYPES}")
        return v

    @field_validator("quality_period_type")
    @classmethod
    def validate_quality_period(cls, v: str) -> str:
        """Validate quality slice granularity"""
        if v not in PERIOD_TYPES:
            raise ValueError(f"Period type must be one of: {PERIOD_TYPES}")
        return v


class RetentionSettings(BaseSettings):
    """Bronze/Silver Retention Configuration"""

    model_config = SettingsConfigDict(env_prefix="NETPULSE_RETENTION_")

    retention_days: int = Field(default=7, description="Days of raw telemetry to keep")


class MonitoringSettings(BaseSettings):
    """Monitoring and Observability Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="netpulse-analytics", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")

    # API Server
    api_host: str = Field(default="0.0.0.0", alias="API_HOST", description="API host")
    api_port: int = Field(default=8000, alias="API_PORT", description="API port")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    retention: RetentionSettings = Field(default_factory=RetentionSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.app_env == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
