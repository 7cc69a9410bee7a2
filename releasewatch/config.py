"""
Configuration
Settings loaded from environment variables (prefix RELEASEWATCH_) or .env.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service settings."""

    model_config = SettingsConfigDict(
        env_prefix="RELEASEWATCH_",
        env_file=".env",
        extra="ignore",
    )

    # Sample store
    max_samples_per_metric: int = Field(100, ge=2, description="Series cap before eviction")
    retain_samples_per_metric: int = Field(50, ge=1, description="Samples kept after eviction")

    # Trigger engine / dispatcher
    history_max_size: int = Field(1000, ge=1, description="FireEvents kept in history")
    tick_interval_seconds: float = Field(1.0, gt=0, description="Evaluation period")
    action_timeout_seconds: float = Field(5.0, gt=0, description="Time budget per action")
    event_queue_size: int = Field(1000, ge=1, description="Pending events for the alert stream")

    # Impact analysis
    before_window_minutes: float = Field(60, gt=0)
    after_window_minutes: float = Field(30, gt=0)
    after_offset_seconds: float = Field(60, ge=0)
    materiality_percent: float = Field(5.0, ge=0)

    # Collaborators
    deployment_manager_url: Optional[str] = None
    notification_webhook_url: Optional[str] = None
    metric_feed_url: Optional[str] = None
    http_timeout_seconds: float = Field(5.0, gt=0)

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    @model_validator(mode="after")
    def check_retention(self) -> "Settings":
        if self.retain_samples_per_metric >= self.max_samples_per_metric:
            raise ValueError("retain_samples_per_metric must be below max_samples_per_metric")
        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()
