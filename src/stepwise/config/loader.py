"""
Configuration file loading.

Search order:
1. Explicit path (--config flag)
2. .stepwise/config.yaml (project root)
3. ~/.stepwise/config.yaml (user home)
4. Default configuration (no extra drivers)

File layout::

    drivers:
      aws:
        factory: my_drivers.aws:AwsDriver
        options:
          region: us-east-1
      simulated:
        options:
          kinds:
            nat-gateway: {ready_after: 3}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import structlog
import yaml

from stepwise.core.errors import ConfigurationError

logger = structlog.get_logger()


@dataclass
class DriverConfig:
    """How to build one named driver."""

    name: str
    factory: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any] | None) -> "DriverConfig":
        data = data or {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Driver '{name}' configuration must be a mapping")
        options = data.get("options") or {}
        if not isinstance(options, dict):
            raise ConfigurationError(f"Driver '{name}' options must be a mapping")
        return cls(name=name, factory=data.get("factory"), options=dict(options))

    def merged(self, other: "DriverConfig") -> "DriverConfig":
        """Overlay another config on this one (other wins)."""
        return DriverConfig(
            name=self.name,
            factory=other.factory or self.factory,
            options={**self.options, **other.options},
        )


@dataclass
class StepwiseConfig:
    """Configuration loaded from a config file."""

    drivers: Dict[str, DriverConfig] = field(default_factory=dict)
    path: Optional[Path] = None

    @classmethod
    def default(cls) -> "StepwiseConfig":
        return cls()

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: Optional[Path] = None) -> "StepwiseConfig":
        drivers_data = data.get("drivers") or {}
        if not isinstance(drivers_data, dict):
            raise ConfigurationError("'drivers' must be a mapping of driver name to settings")
        drivers = {
            name: DriverConfig.from_dict(name, value) for name, value in drivers_data.items()
        }
        return cls(drivers=drivers, path=path)


def get_config_path(explicit_path: str | Path | None = None) -> Path | None:
    """
    Find the configuration file to use.

    Returns:
        Path to config file or None if not found
    """
    if explicit_path:
        path = Path(explicit_path)
        if path.exists():
            return path
        raise ConfigurationError(f"Config file not found: {path}")

    cwd_config = Path.cwd() / ".stepwise" / "config.yaml"
    if cwd_config.exists():
        return cwd_config

    home_config = Path.home() / ".stepwise" / "config.yaml"
    if home_config.exists():
        return home_config

    return None


def load_config(path: str | Path | None = None) -> StepwiseConfig:
    """
    Load configuration from file or return defaults.

    Args:
        path: Optional explicit config file path

    Returns:
        StepwiseConfig instance
    """
    config_path = get_config_path(path)
    if config_path is None:
        return StepwiseConfig.default()

    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")

    logger.debug("loaded_config", path=str(config_path))
    return StepwiseConfig.from_dict(data, path=config_path)
