"""In-memory driver for rehearsing plans and for tests.

Each resource kind can be scripted to become ready after a number of polls,
never become ready, fail, or fail on create/delete. Every call is recorded
in :attr:`SimulatedDriver.calls` so the order of operations can be checked.

Example plan section::

    drivers:
      simulated:
        kinds:
          nat-gateway: {ready_after: 3, ready_status: available}
          eip: {delete_error: fatal}
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Mapping, Optional, Tuple

import structlog

from stepwise.core.errors import (
    DriverError,
    ResourceNotFoundError,
    TransientError,
    ValidationError,
)
from stepwise.drivers.base import CreateResult, DriverHealth, PollResult, ResourceState
from stepwise.drivers.registry import register_driver

logger = structlog.get_logger()

_ERRORS = {
    "validation": ValidationError,
    "transient": TransientError,
    "fatal": DriverError,
    "not_found": ResourceNotFoundError,
}


@dataclass
class KindBehavior:
    """Scripted behavior for one resource kind."""

    ready_after: int = 0
    never_ready: bool = False
    fail_after: Optional[int] = None
    create_error: Optional[str] = None
    transient_create_failures: int = 0
    delete_error: Optional[str] = None
    transient_delete_failures: int = 0
    deleted_after: int = 0
    ready_status: str = "available"
    pending_status: str = "pending"
    attributes: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "KindBehavior":
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown simulated behavior option(s): {', '.join(sorted(unknown))}")
        for key in ("create_error", "delete_error"):
            if data.get(key) is not None and data[key] not in _ERRORS:
                raise ValueError(f"{key} must be one of {', '.join(sorted(_ERRORS))}")
        return cls(**data)


@dataclass
class _SimResource:
    kind: str
    params: Dict[str, Any]
    polls: int = 0
    deleting: bool = False
    delete_polls: int = 0
    deleted: bool = False


class SimulatedDriver:
    """Resource driver that keeps everything in memory."""

    name = "simulated"

    def __init__(
        self,
        kinds: Mapping[str, Mapping[str, Any]] | None = None,
        default: Mapping[str, Any] | None = None,
        healthy: bool = True,
    ) -> None:
        self._default = KindBehavior.from_dict(default)
        self._kinds = {kind: KindBehavior.from_dict(spec) for kind, spec in (kinds or {}).items()}
        self._healthy = healthy
        self._resources: Dict[str, _SimResource] = {}
        self._counter = 0
        self._create_failures: Dict[str, int] = {}
        self._delete_failures: Dict[str, int] = {}
        self.calls: List[Tuple[str, str, str]] = []

    def behavior(self, kind: str) -> KindBehavior:
        return self._kinds.get(kind, self._default)

    def configure(self, kind: str, **options: Any) -> None:
        """Set (or replace) behavior for a kind."""
        self._kinds[kind] = KindBehavior.from_dict(options)

    @property
    def live_resources(self) -> List[str]:
        """Ids of resources that have not been deleted."""
        return [rid for rid, res in self._resources.items() if not res.deleted]

    def params_for(self, resource_id: str) -> Dict[str, Any]:
        """Parameters the resource was created with."""
        return dict(self._resources[resource_id].params)

    def deleted_ids(self) -> List[str]:
        """Ids in the order delete was called (successful or not)."""
        return [rid for op, _, rid in self.calls if op == "delete"]

    async def health_check(self) -> DriverHealth:
        if self._healthy:
            return DriverHealth(status="healthy")
        return DriverHealth(status="unhealthy", details="simulated credentials rejected")

    async def create(self, kind: str, params: Mapping[str, Any]) -> CreateResult:
        behavior = self.behavior(kind)

        failures = self._create_failures.get(kind, 0)
        if failures < behavior.transient_create_failures:
            self._create_failures[kind] = failures + 1
            self.calls.append(("create", kind, ""))
            raise TransientError(f"Simulated throttling creating {kind}")

        if behavior.create_error:
            self.calls.append(("create", kind, ""))
            raise _ERRORS[behavior.create_error](f"Simulated {behavior.create_error} error creating {kind}")

        self._counter += 1
        resource_id = f"{kind}-{self._counter:08x}"
        self._resources[resource_id] = _SimResource(kind=kind, params=dict(params))
        self.calls.append(("create", kind, resource_id))
        logger.debug("simulated_create", kind=kind, resource_id=resource_id)

        attributes = {"arn": f"arn:sim:{kind}:{resource_id}", **behavior.attributes}
        return CreateResult(id=resource_id, attributes=attributes)

    async def poll(self, kind: str, resource_id: str) -> PollResult:
        self.calls.append(("poll", kind, resource_id))
        resource = self._resources.get(resource_id)
        if resource is None or resource.deleted:
            return PollResult(state=ResourceState.DELETED, status="deleted")

        behavior = self.behavior(kind)

        if resource.deleting:
            resource.delete_polls += 1
            if resource.delete_polls > behavior.deleted_after:
                resource.deleted = True
                return PollResult(state=ResourceState.DELETED, status="deleted")
            return PollResult(state=ResourceState.PENDING, status="deleting")

        resource.polls += 1
        if behavior.fail_after is not None and resource.polls > behavior.fail_after:
            return PollResult(state=ResourceState.FAILED, status="failed", detail="Simulated failure")
        if behavior.never_ready or resource.polls <= behavior.ready_after:
            return PollResult(state=ResourceState.PENDING, status=behavior.pending_status)
        return PollResult(state=ResourceState.READY, status=behavior.ready_status)

    async def delete(self, kind: str, resource_id: str, params: Mapping[str, Any]) -> None:
        self.calls.append(("delete", kind, resource_id))
        behavior = self.behavior(kind)

        failures = self._delete_failures.get(resource_id, 0)
        if failures < behavior.transient_delete_failures:
            self._delete_failures[resource_id] = failures + 1
            raise TransientError(f"Simulated throttling deleting {resource_id}")

        if behavior.delete_error:
            raise _ERRORS[behavior.delete_error](f"Simulated {behavior.delete_error} error deleting {resource_id}")

        resource = self._resources.get(resource_id)
        if resource is None or resource.deleted:
            raise ResourceNotFoundError(f"{kind} {resource_id} does not exist")

        if behavior.deleted_after > 0:
            resource.deleting = True
        else:
            resource.deleted = True
        logger.debug("simulated_delete", kind=kind, resource_id=resource_id)


register_driver(
    "simulated",
    SimulatedDriver,
    description="In-memory driver for rehearsals and tests",
)
