"""Plan and step models.

A :class:`Plan` is the full, ordered provisioning sequence; it is fixed
before execution. Each :class:`Step` names a resource kind, its parameters
(literals or ``${...}`` references to earlier steps), how to tell when the
resource is usable, and how to reverse it.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from stepwise.config.loader import DriverConfig

DEFAULT_DRIVER = "simulated"


@dataclass(frozen=True)
class ReadinessPolicy:
    """Bounded wait for a resource to reach a state.

    ``backoff`` of 1.0 polls at a fixed ``interval``; larger values grow the
    interval geometrically up to ``max_interval``.
    """

    timeout: float
    interval: float
    backoff: float = 1.0
    max_interval: Optional[float] = None
    max_attempts: Optional[int] = None
    status: Optional[str] = None

    def delay(self, attempt: int) -> float:
        """Sleep before poll number ``attempt + 1`` (``attempt`` is 0-based)."""
        try:
            delay = self.interval * (self.backoff**attempt)
        except OverflowError:
            delay = math.inf
        if self.max_interval is not None:
            delay = min(delay, self.max_interval)
        return delay

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "timeout": self.timeout,
            "interval": self.interval,
            "backoff": self.backoff,
        }
        if self.max_interval is not None:
            data["max_interval"] = self.max_interval
        if self.max_attempts is not None:
            data["max_attempts"] = self.max_attempts
        if self.status is not None:
            data["status"] = self.status
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReadinessPolicy":
        return cls(
            timeout=float(data["timeout"]),
            interval=float(data["interval"]),
            backoff=float(data.get("backoff", 1.0)),
            max_interval=_optional_float(data.get("max_interval")),
            max_attempts=_optional_int(data.get("max_attempts")),
            status=data.get("status"),
        )


@dataclass(frozen=True)
class TeardownSpec:
    """How to reverse a step."""

    action: Literal["delete", "retain"] = "delete"
    params: Dict[str, Any] = field(default_factory=dict)
    wait: Optional[ReadinessPolicy] = None

    @property
    def retain(self) -> bool:
        return self.action == "retain"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"action": self.action, "params": dict(self.params)}
        if self.wait is not None:
            data["wait"] = self.wait.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any] | None) -> "TeardownSpec":
        data = data or {}
        wait = data.get("wait")
        return cls(
            action=data.get("action", "delete"),
            params=dict(data.get("params") or {}),
            wait=ReadinessPolicy.from_dict(wait) if wait else None,
        )


@dataclass(frozen=True)
class Step:
    """One declarative unit of resource creation."""

    name: str
    kind: str
    params: Dict[str, Any] = field(default_factory=dict)
    driver: Optional[str] = None
    readiness: Optional[ReadinessPolicy] = None
    teardown: TeardownSpec = field(default_factory=TeardownSpec)
    when: Any = None
    description: Optional[str] = None


@dataclass
class Plan:
    """Ordered provisioning sequence."""

    name: str
    steps: List[Step] = field(default_factory=list)
    driver: str = DEFAULT_DRIVER
    description: Optional[str] = None
    variables: Dict[str, Any] = field(default_factory=dict)
    drivers: Dict[str, DriverConfig] = field(default_factory=dict)

    def driver_for(self, step: Step) -> str:
        return step.driver or self.driver

    def driver_names(self) -> List[str]:
        """Drivers used by this plan, in first-use order."""
        names: List[str] = []
        for step in self.steps:
            name = self.driver_for(step)
            if name not in names:
                names.append(name)
        return names

    def index_of(self, name: str) -> Optional[int]:
        for index, step in enumerate(self.steps):
            if step.name == name:
                return index
        return None

    def __len__(self) -> int:
        return len(self.steps)


def _optional_float(value: Any) -> Optional[float]:
    return None if value is None else float(value)


def _optional_int(value: Any) -> Optional[int]:
    return None if value is None else int(value)
