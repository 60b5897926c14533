"""
Stepwise Configuration System.

Provides:
- Pydantic-based settings (environment variables, .env files)
- Per-project and user-level config files describing drivers
"""

from stepwise.config.loader import (
    DriverConfig,
    StepwiseConfig,
    get_config_path,
    load_config,
)
from stepwise.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
    "DriverConfig",
    "StepwiseConfig",
    "get_config_path",
    "load_config",
]
