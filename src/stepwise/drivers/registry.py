from __future__ import annotations

import importlib
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping

from stepwise.config.loader import DriverConfig
from stepwise.core.errors import ConfigurationError

DriverFactory = Callable[..., Any]


@dataclass(frozen=True)
class DriverSpec:
    """Metadata describing a registered driver."""

    name: str
    factory: DriverFactory
    description: str | None = None


class DriverRegistry:
    """Simple in-memory registry for resource drivers."""

    def __init__(self) -> None:
        self._drivers: Dict[str, DriverSpec] = {}

    def register(
        self,
        name: str,
        factory: DriverFactory,
        *,
        description: str | None = None,
    ) -> None:
        if not name:
            raise ValueError("Driver name is required")
        self._drivers[name] = DriverSpec(name=name, factory=factory, description=description)

    def create(self, name: str, **kwargs: Any) -> Any:
        spec = self._drivers.get(name)
        if spec is None:
            raise ConfigurationError(f"Driver '{name}' is not registered")
        return spec.factory(**kwargs)

    def get(self, name: str) -> DriverSpec | None:
        return self._drivers.get(name)

    def list(self) -> List[DriverSpec]:
        return list(self._drivers.values())


driver_registry = DriverRegistry()


def register_driver(
    name: str,
    factory: DriverFactory,
    *,
    description: str | None = None,
) -> None:
    driver_registry.register(name, factory, description=description)


def create_driver(name: str, **kwargs: Any) -> Any:
    return driver_registry.create(name, **kwargs)


def list_drivers() -> List[DriverSpec]:
    return driver_registry.list()


def import_factory(path: str) -> DriverFactory:
    """Resolve ``package.module:attr`` to a driver factory."""
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigurationError(f"Driver factory must look like 'module:attr', got '{path}'")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import driver module '{module_name}': {e}") from e
    try:
        factory = getattr(module, attr)
    except AttributeError as e:
        raise ConfigurationError(f"Module '{module_name}' has no attribute '{attr}'") from e
    if not callable(factory):
        raise ConfigurationError(f"Driver factory '{path}' is not callable")
    return factory


def build_drivers(
    names: List[str],
    configs: Mapping[str, DriverConfig] | None = None,
    registry: DriverRegistry | None = None,
) -> Dict[str, Any]:
    """Instantiate each named driver once, from config or the registry."""
    registry = registry or driver_registry
    configs = configs or {}
    drivers: Dict[str, Any] = {}
    for name in names:
        if name in drivers:
            continue
        config = configs.get(name) or DriverConfig(name=name)
        if config.factory:
            drivers[name] = import_factory(config.factory)(**config.options)
        else:
            drivers[name] = registry.create(name, **config.options)
    return drivers
