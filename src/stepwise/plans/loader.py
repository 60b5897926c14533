"""
Plan file loading.

Plans are YAML (or JSON, which YAML accepts)::

    name: vpc-getting-started
    driver: simulated
    variables:
      cidr: 10.0.0.0/16
    defaults:
      readiness: {timeout: 300, interval: 10}
    steps:
      - name: vpc
        kind: vpc
        params: {cidr_block: "${vars.cidr}"}
        readiness: true
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
import yaml

from stepwise.config.loader import DriverConfig
from stepwise.config.settings import Settings, get_settings
from stepwise.core.errors import ConfigurationError, PlanValidationError
from stepwise.plans.models import DEFAULT_DRIVER, Plan, ReadinessPolicy, Step, TeardownSpec

logger = structlog.get_logger()

_STEP_KEYS = {"name", "kind", "params", "driver", "readiness", "teardown", "when", "description"}
_TEARDOWN_KEYS = {"action", "params", "wait"}


def load_plan(path: str | Path, settings: Optional[Settings] = None) -> Plan:
    """Read and parse a plan file."""
    plan_path = Path(path)
    try:
        with open(plan_path) as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Plan file not found: {plan_path}") from e
    except yaml.YAMLError as e:
        raise PlanValidationError(f"Plan file {plan_path} is not valid YAML", problems=[str(e)]) from e

    plan = parse_plan(data, settings=settings, default_name=plan_path.stem)
    logger.debug("loaded_plan", path=str(plan_path), plan=plan.name, steps=len(plan.steps))
    return plan


def parse_plan(
    data: Any,
    settings: Optional[Settings] = None,
    default_name: str = "plan",
) -> Plan:
    """Build a Plan from parsed YAML/JSON data."""
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise PlanValidationError("Plan must be a mapping", problems=["top-level value is not a mapping"])

    settings = settings or get_settings()
    problems: List[str] = []

    defaults = data.get("defaults") or {}
    base_policy = _settings_policy(settings)
    if isinstance(defaults, dict) and isinstance(defaults.get("readiness"), dict):
        base_policy = {**base_policy, **defaults["readiness"]}

    raw_steps = data.get("steps") or []
    if not isinstance(raw_steps, list):
        raise PlanValidationError("Plan 'steps' must be a list", problems=["'steps' is not a list"])

    steps: List[Step] = []
    for index, raw in enumerate(raw_steps):
        try:
            steps.append(_parse_step(raw, index, base_policy))
        except (TypeError, ValueError, KeyError) as e:
            problems.append(f"step[{index}]: {e}")

    variables = data.get("variables") or {}
    if not isinstance(variables, dict):
        problems.append("'variables' must be a mapping")
        variables = {}

    drivers: Dict[str, DriverConfig] = {}
    raw_drivers = data.get("drivers") or {}
    if not isinstance(raw_drivers, dict):
        problems.append("'drivers' must be a mapping")
    else:
        for name, options in raw_drivers.items():
            drivers[name] = _parse_driver(name, options)

    if problems:
        raise PlanValidationError("Plan could not be parsed", problems=problems)

    return Plan(
        name=str(data.get("name") or default_name),
        description=data.get("description"),
        driver=str(data.get("driver") or DEFAULT_DRIVER),
        variables=dict(variables),
        drivers=drivers,
        steps=steps,
    )


def _parse_step(raw: Any, index: int, base_policy: Dict[str, Any]) -> Step:
    if not isinstance(raw, dict):
        raise TypeError("step must be a mapping")

    unknown = set(raw) - _STEP_KEYS
    if unknown:
        raise ValueError(f"unknown field(s): {', '.join(sorted(unknown))}")

    kind = raw.get("kind")
    if not kind:
        raise ValueError("kind is required")

    params = raw.get("params") or {}
    if not isinstance(params, dict):
        raise TypeError("params must be a mapping")

    return Step(
        name=str(raw.get("name") or f"{kind}-{index}"),
        kind=str(kind),
        params=dict(params),
        driver=raw.get("driver"),
        readiness=_parse_policy(raw.get("readiness"), base_policy),
        teardown=_parse_teardown(raw.get("teardown"), base_policy),
        when=raw.get("when"),
        description=raw.get("description"),
    )


def _parse_teardown(raw: Any, base_policy: Dict[str, Any]) -> TeardownSpec:
    if raw is None:
        return TeardownSpec()
    if isinstance(raw, str):
        return TeardownSpec(action=raw)  # type: ignore[arg-type]
    if not isinstance(raw, dict):
        raise TypeError("teardown must be a mapping or an action name")

    unknown = set(raw) - _TEARDOWN_KEYS
    if unknown:
        raise ValueError(f"unknown teardown field(s): {', '.join(sorted(unknown))}")

    params = raw.get("params") or {}
    if not isinstance(params, dict):
        raise TypeError("teardown params must be a mapping")

    return TeardownSpec(
        action=raw.get("action", "delete"),
        params=dict(params),
        wait=_parse_policy(raw.get("wait"), base_policy),
    )


def _parse_policy(raw: Any, base_policy: Dict[str, Any]) -> Optional[ReadinessPolicy]:
    if raw is None or raw is False:
        return None
    if raw is True:
        return ReadinessPolicy.from_dict(base_policy)
    if not isinstance(raw, dict):
        raise TypeError("readiness must be true, false or a mapping")
    merged = {**base_policy, **raw}
    inherited_cap = merged.get("max_interval")
    if "max_interval" not in raw and inherited_cap is not None and inherited_cap < merged["interval"]:
        merged["max_interval"] = None
    return ReadinessPolicy.from_dict(merged)


def _parse_driver(name: str, raw: Any) -> DriverConfig:
    # Plans may give options inline or nested under 'options'
    if isinstance(raw, dict) and ("options" in raw or "factory" in raw):
        return DriverConfig.from_dict(name, raw)
    return DriverConfig.from_dict(name, {"options": raw or {}})


def _settings_policy(settings: Settings) -> Dict[str, Any]:
    return {
        "timeout": settings.default_timeout,
        "interval": settings.default_interval,
        "backoff": settings.default_backoff,
        "max_interval": settings.default_max_interval,
    }
