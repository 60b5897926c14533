"""Plan validation, run before anything is created."""

from __future__ import annotations

import math
import re
from typing import Any, Iterable, List, Optional

from stepwise.core.errors import PlanValidationError
from stepwise.plans.models import Plan, ReadinessPolicy, Step
from stepwise.plans.references import iter_references, parse_reference

STEP_NAME_PATTERN = re.compile(r"^[\w-]+$")
TEARDOWN_ACTIONS = ("delete", "retain")


def validate_plan(plan: Plan, *, known_drivers: Optional[Iterable[str]] = None) -> List[str]:
    """Return a list of problems; an empty list means the plan is valid."""
    problems: List[str] = []
    known = set(known_drivers) if known_drivers is not None else None
    seen: dict[str, int] = {}

    if not plan.name:
        problems.append("Plan name is required")

    for index, step in enumerate(plan.steps):
        label = f"step[{index}] '{step.name}'"

        if not step.name or not STEP_NAME_PATTERN.match(step.name):
            problems.append(f"{label}: name must be non-empty and use only letters, digits, '_' or '-'")
        elif step.name in seen:
            problems.append(f"{label}: duplicate step name (first used by step[{seen[step.name]}])")
        else:
            seen[step.name] = index

        if not step.kind or not str(step.kind).strip():
            problems.append(f"{label}: kind is required")

        if known is not None and plan.driver_for(step) not in known:
            problems.append(f"{label}: unknown driver '{plan.driver_for(step)}'")

        if step.teardown.action not in TEARDOWN_ACTIONS:
            problems.append(
                f"{label}: teardown action must be one of {', '.join(TEARDOWN_ACTIONS)}"
            )

        if step.readiness is not None:
            problems.extend(_check_policy(step.readiness, f"{label} readiness"))
        if step.teardown.wait is not None:
            problems.extend(_check_policy(step.teardown.wait, f"{label} teardown.wait"))

        for where, value in (
            ("params", step.params),
            ("when", step.when),
            ("teardown.params", step.teardown.params),
        ):
            problems.extend(_check_references(plan, index, step, where, value))

    return problems


def ensure_valid(plan: Plan, *, known_drivers: Optional[Iterable[str]] = None) -> None:
    """Raise PlanValidationError listing every problem found."""
    problems = validate_plan(plan, known_drivers=known_drivers)
    if problems:
        raise PlanValidationError(f"Plan '{plan.name}' is invalid", problems=problems)


def _check_references(plan: Plan, index: int, step: Step, where: str, value: Any) -> List[str]:
    problems: List[str] = []
    label = f"step[{index}] '{step.name}' {where}"

    for expression in iter_references(value):
        try:
            ref = parse_reference(expression)
        except ValueError as e:
            problems.append(f"{label}: {e}")
            continue

        if ref.scope == "vars" and ref.target not in plan.variables:
            problems.append(f"{label}: undefined variable '{ref.target}'")
            continue

        if not ref.is_step:
            continue

        if isinstance(ref.target, int):
            target_index: Optional[int] = ref.target
            if ref.target >= len(plan.steps):
                problems.append(f"{label}: '${{{expression}}}' refers to a step that does not exist")
                continue
        else:
            target_index = plan.index_of(ref.target)
            if target_index is None:
                problems.append(f"{label}: '${{{expression}}}' refers to unknown step '{ref.target}'")
                continue

        if target_index == index:
            problems.append(f"{label}: '${{{expression}}}' refers to the step itself")
        elif target_index > index:
            problems.append(f"{label}: '${{{expression}}}' refers to a later step")

    return problems


def _check_policy(policy: ReadinessPolicy, label: str) -> List[str]:
    problems: List[str] = []
    for name in ("timeout", "interval", "backoff", "max_interval"):
        value = getattr(policy, name)
        if value is not None and not math.isfinite(value):
            problems.append(f"{label}: {name} must be a finite number")
    if problems:
        return problems
    if policy.timeout <= 0:
        problems.append(f"{label}: timeout must be positive")
    if policy.interval <= 0:
        problems.append(f"{label}: interval must be positive")
    if policy.backoff < 1:
        problems.append(f"{label}: backoff must be >= 1")
    if policy.max_interval is not None and policy.max_interval < policy.interval:
        problems.append(f"{label}: max_interval must be >= interval")
    if policy.max_attempts is not None and policy.max_attempts < 1:
        problems.append(f"{label}: max_attempts must be at least 1")
    return problems
