"""Application configuration using Pydantic Settings."""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    app_name: str = "sleep-tracker"
    app_version: str = "0.1.0"
    debug: bool = False

    # API settings
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Logging
    log_level: str = "INFO"

    # Storage backend
    storage_backend: Literal["local", "dynamodb"] = "local"
    aws_region: str = "us-east-1"
    dynamodb_table_name: str = "SleepTracker"

    # Motion sampling
    sample_interval_s: float = 30.0
    publish_interval_s: float = 60.0
    light_threshold: float = 0.5
    restless_threshold: float = 2.0
    max_samples: int = 960

    # Session lifecycle
    recovery_window_hours: float = 12.0
    alarm_max_horizon_hours: float = 24.0
    reminder_lead_minutes: int = 30


# Create a singleton instance
settings = Settings()
