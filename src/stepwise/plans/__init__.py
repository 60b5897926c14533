"""Plan model, loading, reference resolution and validation."""

from stepwise.plans.loader import load_plan, parse_plan
from stepwise.plans.models import Plan, ReadinessPolicy, Step, TeardownSpec
from stepwise.plans.references import ReferenceResolver, StepOutputs
from stepwise.plans.validator import ensure_valid, validate_plan

__all__ = [
    "Plan",
    "ReadinessPolicy",
    "ReferenceResolver",
    "Step",
    "StepOutputs",
    "TeardownSpec",
    "ensure_valid",
    "load_plan",
    "parse_plan",
    "validate_plan",
]
