"""
Mizan configuration management using pydantic-settings.

Detection thresholds are deliberately not configurable; only operational
settings (logging, fetch timeout, alert wording) live here.
"""

import logging
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: str = Field(
        default="development",
        description="Environment: development, staging, production",
    )

    log_level: str = Field(default="INFO", description="Logging level")

    # Dataset fetch
    dataset_fetch_timeout_seconds: Optional[float] = Field(
        default=30.0,
        description="Timeout for fetching the analysis window (None disables)",
    )

    # Alerting
    fraud_alert_title: str = Field(
        default="Fraud Pattern Detected",
        description="Title used for FRAUD_PATTERN alerts",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and validate the logging level name."""
        level = v.upper()
        if level not in ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("dataset_fetch_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: Optional[float]) -> Optional[float]:
        """Timeout must be positive when set."""
        if v is not None and v <= 0:
            raise ValueError("DATASET_FETCH_TIMEOUT_SECONDS must be positive")
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging for a host process embedding the engine."""
    logging.basicConfig(
        level=getattr(logging, level or settings.log_level),
        format=LOG_FORMAT,
    )


# Global settings instance
settings = Settings()
