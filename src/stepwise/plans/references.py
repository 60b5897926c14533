"""Reference substitution for step parameters.

Supports substitution of:
- ${steps.NAME.FIELD}  - output of an earlier step (id, kind, or attribute)
- ${step[INDEX].FIELD} - same, addressed by 0-based position in the plan
- ${vars.NAME}         - plan variable
- ${run.id}, ${run.suffix} - run identifier and random suffix
- ${plan.name}         - plan name
- ${env.NAME}          - process environment variable
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Set, Tuple, Union

from stepwise.core.errors import ValidationError

REFERENCE_PATTERN = re.compile(r"\$\{([^}]*)\}")
_INDEXED = re.compile(r"^steps?\[(\d+)\]((?:\.[\w-]+)+)$")
_NAMED = re.compile(r"^steps\.([\w-]+)((?:\.[\w-]+)+)$")
_SIMPLE = re.compile(r"^(vars|run|plan|env)\.([\w-]+)$")

RUN_FIELDS = ("id", "suffix")
PLAN_FIELDS = ("name",)


@dataclass(frozen=True)
class Reference:
    """A parsed ``${...}`` expression."""

    scope: str
    target: Union[str, int]
    path: Tuple[str, ...] = ()
    text: str = ""

    @property
    def is_step(self) -> bool:
        return self.scope == "steps"


def parse_reference(expression: str) -> Reference:
    """Parse the inside of a ``${...}`` placeholder.

    Raises:
        ValueError: if the expression has an unknown scope or shape
    """
    expr = expression.strip()

    match = _INDEXED.match(expr)
    if match:
        return Reference("steps", int(match.group(1)), tuple(match.group(2)[1:].split(".")), expr)

    match = _NAMED.match(expr)
    if match:
        return Reference("steps", match.group(1), tuple(match.group(2)[1:].split(".")), expr)

    match = _SIMPLE.match(expr)
    if match:
        scope, name = match.groups()
        if scope == "run" and name not in RUN_FIELDS:
            raise ValueError(f"Unknown run field '{name}' in '${{{expr}}}'")
        if scope == "plan" and name not in PLAN_FIELDS:
            raise ValueError(f"Unknown plan field '{name}' in '${{{expr}}}'")
        return Reference(scope, name, (), expr)

    raise ValueError(f"Unrecognized reference '${{{expr}}}'")


def iter_references(value: Any) -> Iterator[str]:
    """Yield every raw ``${...}`` expression found in a (nested) value."""
    if isinstance(value, str):
        for match in REFERENCE_PATTERN.finditer(value):
            yield match.group(1)
    elif isinstance(value, dict):
        for item in value.values():
            yield from iter_references(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from iter_references(item)


@dataclass
class StepOutputs:
    """Results of executed steps, addressable by name and by plan index."""

    order: Sequence[str]
    values: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    skipped: Set[str] = field(default_factory=set)

    def record(self, name: str, resource_id: str, kind: str, attributes: Mapping[str, Any]) -> None:
        self.values[name] = {**attributes, "id": resource_id, "kind": kind}

    def skip(self, name: str) -> None:
        self.skipped.add(name)

    def lookup(self, target: Union[str, int]) -> Tuple[str, Dict[str, Any]]:
        if isinstance(target, int):
            if target >= len(self.order):
                raise ValidationError(f"Step index {target} is out of range")
            name = self.order[target]
        else:
            name = target
        if name in self.skipped:
            raise ValidationError(f"Step '{name}' was skipped; its outputs are not available")
        if name not in self.values:
            raise ValidationError(f"Step '{name}' has not produced a result yet")
        return name, self.values[name]


class ReferenceResolver:
    """Resolves ``${...}`` placeholders against run state."""

    def __init__(
        self,
        outputs: StepOutputs,
        *,
        variables: Optional[Mapping[str, Any]] = None,
        run_id: str = "",
        run_suffix: str = "",
        plan_name: str = "",
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.outputs = outputs
        self.variables = dict(variables or {})
        self.run = {"id": run_id, "suffix": run_suffix}
        self.plan = {"name": plan_name}
        self.environ = environ if environ is not None else os.environ

    def resolve(self, value: Any) -> Any:
        """Recursively substitute references in a value.

        A string that is exactly one placeholder is replaced by the raw value
        (which may be a number, list, ...). Otherwise each placeholder is
        interpolated with ``str()``.
        """
        if isinstance(value, str):
            return self._resolve_string(value)
        elif isinstance(value, dict):
            return {k: self.resolve(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [self.resolve(item) for item in value]
        else:
            return value

    def _resolve_string(self, text: str) -> Any:
        whole = REFERENCE_PATTERN.fullmatch(text)
        if whole:
            return self._lookup(whole.group(1))

        def replace(match: re.Match) -> str:
            return str(self._lookup(match.group(1)))

        return REFERENCE_PATTERN.sub(replace, text)

    def _lookup(self, expression: str) -> Any:
        try:
            ref = parse_reference(expression)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        if ref.scope == "steps":
            name, value = self.outputs.lookup(ref.target)
            return _walk(value, ref.path, f"steps.{name}")
        if ref.scope == "vars":
            if ref.target not in self.variables:
                raise ValidationError(f"Undefined variable '{ref.target}'")
            return self.variables[ref.target]
        if ref.scope == "run":
            return self.run[str(ref.target)]
        if ref.scope == "plan":
            return self.plan[str(ref.target)]
        # env
        if ref.target not in self.environ:
            raise ValidationError(f"Environment variable '{ref.target}' is not set")
        return self.environ[str(ref.target)]


def _walk(value: Any, path: Sequence[str], where: str) -> Any:
    current = value
    trail: List[str] = [where]
    for part in path:
        trail.append(part)
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        else:
            raise ValidationError(f"'{'.'.join(trail)}' is not available")
    return current


def is_truthy(value: Any) -> bool:
    """Evaluate a resolved ``when`` condition."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() not in ("", "false", "no", "0", "off", "none")
    return bool(value)
