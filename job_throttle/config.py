"""
Application configuration using Pydantic Settings.
Loads configuration from environment variables with sensible defaults.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from job_throttle.constants import DEFAULT_LOCK_KEY_PREFIX, LockFailurePolicy


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Lock service
    redis_url: str | None = None
    lock_key_prefix: str = DEFAULT_LOCK_KEY_PREFIX
    lock_timeout_seconds: float = 5.0
    lock_failure_policy: LockFailurePolicy = LockFailurePolicy.FAIL_OPEN

    # Slot lifecycle
    release_on_completion: bool = False

    # Observability
    otel_enabled: bool = False
    otel_exporter_otlp_endpoint: str = "http://localhost:4317"
    otel_service_name: str = "job-throttle"
    log_level: str = "INFO"
    log_format: str = "json"  # json or console


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
