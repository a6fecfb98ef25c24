"""
Centralized configuration management using Pydantic BaseSettings.
Every policy constant the monitoring engine relies on is supplied here.
"""

from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class MonitoringSettings(BaseSettings):
    """
    Performance monitoring settings.
    Values can be overridden through PERFMON_* environment variables.
    """

    model_config = SettingsConfigDict(
        env_prefix="PERFMON_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_assignment=True,
    )

    # Engine
    enabled: bool = Field(
        default=True,
        description="Whether performance monitoring records anything at all",
    )
    slow_query_threshold_ms: float = Field(
        default=5000.0,
        ge=0,
        description="Operations lasting at least this long count as slow",
    )
    max_metrics_history: int = Field(
        default=1000,
        ge=1,
        description="Finalized operations retained in history (also caps in-flight operations)",
    )
    recent_window_size: int = Field(
        default=100,
        ge=1,
        description="Number of most recent finalized operations in the recent view",
    )
    recent_window_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Optional age limit for the recent view",
    )
    sampling_rate: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        description="Fraction of operations that are tracked",
    )
    track_memory: bool = Field(
        default=True,
        description="Capture process memory at operation start and end",
    )
    max_query_text_length: int = Field(
        default=200,
        ge=0,
        description="Query text is truncated to this many characters",
    )

    # Connection pool
    track_pool_metrics: bool = Field(
        default=True,
        description="Record connection pool snapshots and events",
    )
    pool_event_window_seconds: float = Field(
        default=600.0,
        gt=0,
        description="Age limit of pool events used for recent rates",
    )
    max_pool_events: int = Field(
        default=1000,
        ge=1,
        description="Pool events retained",
    )

    # Health policy
    high_error_count: int = Field(
        default=10,
        ge=0,
        description="Pool error count above which the pool is flagged",
    )
    high_utilization_ratio: float = Field(
        default=0.9,
        gt=0,
        le=1.0,
        description="Active/total ratio treated as near capacity",
    )
    high_pending_requests: int = Field(
        default=5,
        ge=0,
        description="Pending request count above which the pool is flagged",
    )
    pool_error_rate_per_minute: float = Field(
        default=1.0,
        ge=0,
        description="Recent pool error events per minute treated as elevated",
    )
    pool_retry_rate_per_minute: float = Field(
        default=1.0,
        ge=0,
        description="Recent pool retry events per minute treated as elevated",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Log level",
    )
    log_format: str = Field(
        default="text",
        description="Log format (json/text)",
    )
    log_file_path: Path | None = Field(
        default=None,
        description="Log file path",
    )

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format value."""
        v = v.lower()
        if v not in ("json", "text"):
            raise ValueError(f"Invalid log format: {v}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level value."""
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return v

    @property
    def pool_event_window_minutes(self) -> float:
        """Pool event window expressed in minutes."""
        return self.pool_event_window_seconds / 60.0

    def to_dict(self) -> dict[str, Any]:
        """Convert settings to a plain dictionary."""
        return self.model_dump(mode="json")


@lru_cache
def get_settings() -> MonitoringSettings:
    """Uses LRU cache to ensure single instance across application."""
    return MonitoringSettings()


# Global settings instance
settings = get_settings()
