"""
CLI helpers for building drivers, and the `drivers` listing command.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, Mapping, Optional

import structlog

from stepwise.cli.ux import console, print_table
from stepwise.config.loader import DriverConfig, StepwiseConfig, load_config
from stepwise.core.errors import ConfigurationError, main_with_error_handling
from stepwise.drivers import list_drivers
from stepwise.drivers.registry import build_drivers

logger = structlog.get_logger()


def merge_driver_configs(
    config: StepwiseConfig,
    overrides: Optional[Mapping[str, DriverConfig]] = None,
) -> Dict[str, DriverConfig]:
    """Config-file driver settings with plan-level settings layered on top."""
    merged = dict(config.drivers)
    for name, override in (overrides or {}).items():
        merged[name] = merged[name].merged(override) if name in merged else override
    return merged


def load_drivers(
    names: Iterable[str],
    configs: Mapping[str, DriverConfig],
    *,
    strict: bool = True,
) -> Dict[str, Any]:
    """Instantiate drivers by name.

    With ``strict=False`` a driver that cannot be built is logged and left
    out, so teardown can still proceed for the records it can reach.
    """
    names = list(names)
    if strict:
        return build_drivers(names, configs)

    drivers: Dict[str, Any] = {}
    for name in names:
        try:
            drivers.update(build_drivers([name], configs))
        except ConfigurationError as e:
            logger.warning("driver_unavailable", driver=name, error=e.message)
    return drivers


@main_with_error_handling()
def drivers_command(config_path: Optional[str] = None, output_format: str = "text") -> int:
    """List registered and configured drivers."""
    config = load_config(config_path)

    rows = [
        {"name": spec.name, "source": "built-in", "description": spec.description or ""}
        for spec in list_drivers()
    ]
    for name, driver_config in config.drivers.items():
        if driver_config.factory:
            rows.append({"name": name, "source": driver_config.factory, "description": "configured"})

    if output_format == "json":
        print(json.dumps({"drivers": rows}, indent=2))
        return 0

    console.print()
    print_table(
        "Drivers",
        ["Name", "Source", "Description"],
        [[r["name"], r["source"], r["description"]] for r in rows],
    )
    return 0
