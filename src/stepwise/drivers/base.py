"""Resource driver contract.

A driver owns every provider-specific detail: which API to call for a
``kind``, how to map the provider's status strings onto :class:`ResourceState`,
and how to delete. The orchestrator only ever sees these types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Mapping, Protocol, Union, runtime_checkable


class ResourceState(str, Enum):
    """Normalized lifecycle state reported by ``poll``."""

    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"
    DELETED = "deleted"


@dataclass(frozen=True)
class CreateResult:
    """Identifier plus any extra outputs (ARNs, endpoints...) of a create call."""

    id: str
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PollResult:
    """State of a resource, with the provider's raw status for reporting."""

    state: ResourceState
    status: str | None = None
    detail: str | None = None


@dataclass(frozen=True)
class DriverHealth:
    status: Literal["healthy", "degraded", "unhealthy"]
    details: str | None = None

    @property
    def usable(self) -> bool:
        return self.status != "unhealthy"


@runtime_checkable
class ResourceDriver(Protocol):
    """Contract every driver implements."""

    async def create(self, kind: str, params: Mapping[str, Any]) -> Union[CreateResult, str]:
        """Create one resource. Raise ValidationError / TransientError / DriverError."""
        ...

    async def poll(self, kind: str, resource_id: str) -> Union[PollResult, ResourceState]:
        """Report the current state of a resource."""
        ...

    async def delete(self, kind: str, resource_id: str, params: Mapping[str, Any]) -> None:
        """Delete a resource. "Already gone" is success or ResourceNotFoundError."""
        ...


def normalize_create(result: Union[CreateResult, str]) -> CreateResult:
    if isinstance(result, CreateResult):
        return result
    if isinstance(result, str) and result:
        return CreateResult(id=result)
    raise TypeError(f"Driver create() must return a CreateResult or non-empty str, got {result!r}")


def normalize_poll(result: Union[PollResult, ResourceState, str]) -> PollResult:
    if isinstance(result, PollResult):
        return result
    return PollResult(state=ResourceState(result))


async def check_health(driver: Any) -> DriverHealth:
    """Run the driver's optional ``health_check``; drivers without one are healthy."""
    health_check = getattr(driver, "health_check", None)
    if health_check is None:
        return DriverHealth(status="healthy")
    return await health_check()
