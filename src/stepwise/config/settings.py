"""
Application settings using Pydantic.

Provides environment-based configuration loading with STEPWISE_ prefix.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Logging
    log_level: str = "INFO"
    log_file: str | None = None

    # Where run ledgers are written
    state_dir: str = ".stepwise/runs"

    # Readiness defaults, used when a step omits fields
    default_timeout: float = 300.0
    default_interval: float = 10.0
    default_backoff: float = 1.0
    default_max_interval: float = 60.0

    # Create/delete retry (one retry on transient errors)
    create_retry_wait: float = 2.0

    # Teardown policy
    auto_teardown: bool = True
    cleanup_policy: str = "prompt"  # prompt, always, never

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "STEPWISE_"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
