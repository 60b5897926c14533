"""Resource drivers and built-in registrations."""

# Import built-in drivers for side effects (registration)
from stepwise.drivers import simulated as _simulated  # noqa: F401
from stepwise.drivers.base import (
    CreateResult,
    DriverHealth,
    PollResult,
    ResourceDriver,
    ResourceState,
)
from stepwise.drivers.registry import (
    build_drivers,
    create_driver,
    list_drivers,
    register_driver,
)

__all__ = [
    "CreateResult",
    "DriverHealth",
    "PollResult",
    "ResourceDriver",
    "ResourceState",
    "build_drivers",
    "create_driver",
    "list_drivers",
    "register_driver",
]
