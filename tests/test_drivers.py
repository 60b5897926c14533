"""Tests for drivers/base.py, drivers/registry.py and drivers/simulated.py."""

import pytest

from stepwise.config.loader import DriverConfig
from stepwise.core.errors import (
    ConfigurationError,
    DriverError,
    ResourceNotFoundError,
    TransientError,
    ValidationError,
)
from stepwise.drivers.base import (
    CreateResult,
    PollResult,
    ResourceDriver,
    ResourceState,
    check_health,
    normalize_create,
    normalize_poll,
)
from stepwise.drivers.registry import DriverRegistry, build_drivers, import_factory, list_drivers
from stepwise.drivers.simulated import KindBehavior, SimulatedDriver


class FakeDriver:
    """Minimal driver used for factory loading tests."""

    def __init__(self, region="us-east-1"):
        self.region = region

    async def create(self, kind, params):
        return "fake-1"

    async def poll(self, kind, resource_id):
        return ResourceState.READY

    async def delete(self, kind, resource_id, params):
        return None


class TestDriverContract:
    """Tests for normalization helpers."""

    def test_normalize_create_from_string(self):
        """Test a bare id becomes a CreateResult."""
        assert normalize_create("vpc-1") == CreateResult(id="vpc-1")

    def test_normalize_create_rejects_empty(self):
        """Test drivers must return an id."""
        with pytest.raises(TypeError):
            normalize_create("")

    def test_normalize_poll_from_string(self):
        """Test a state name becomes a PollResult."""
        assert normalize_poll("ready") == PollResult(state=ResourceState.READY)

    def test_protocol_check(self):
        """Test simulated and fake drivers satisfy the protocol."""
        assert isinstance(SimulatedDriver(), ResourceDriver)
        assert isinstance(FakeDriver(), ResourceDriver)

    @pytest.mark.asyncio
    async def test_health_defaults_to_healthy(self):
        """Test drivers without health_check are treated as healthy."""
        health = await check_health(FakeDriver())

        assert health.usable


class TestDriverRegistry:
    """Tests for DriverRegistry."""

    def test_register_and_create(self):
        """Test a registered factory builds the driver with options."""
        registry = DriverRegistry()
        registry.register("fake", FakeDriver, description="test")

        driver = registry.create("fake", region="eu-west-1")

        assert driver.region == "eu-west-1"
        assert registry.get("fake").description == "test"

    def test_unknown_driver(self):
        """Test creating an unregistered driver is a configuration error."""
        with pytest.raises(ConfigurationError, match="not registered"):
            DriverRegistry().create("aws")

    def test_empty_name_rejected(self):
        with pytest.raises(ValueError):
            DriverRegistry().register("", FakeDriver)

    def test_simulated_registered(self):
        """Test the built-in simulated driver is registered on import."""
        assert "simulated" in {spec.name for spec in list_drivers()}


class TestImportFactory:
    """Tests for loading drivers by import path."""

    def test_import(self):
        """Test module:attr resolves to the factory."""
        assert import_factory("stepwise.drivers.simulated:SimulatedDriver") is SimulatedDriver

    @pytest.mark.parametrize(
        "path",
        ["no_colon", "stepwise_missing_module:Driver", "stepwise.drivers.simulated:Missing"],
    )
    def test_bad_paths(self, path):
        """Test bad factory paths are configuration errors."""
        with pytest.raises(ConfigurationError):
            import_factory(path)

    def test_build_drivers(self):
        """Test configs choose between a factory and the registry."""
        drivers = build_drivers(
            ["fake", "simulated", "fake"],
            {
                "fake": DriverConfig(
                    "fake",
                    factory="stepwise.drivers.simulated:SimulatedDriver",
                    options={"healthy": False},
                ),
                "simulated": DriverConfig("simulated", options={"kinds": {"vpc": {"ready_after": 1}}}),
            },
        )

        assert len(drivers) == 2
        assert drivers["fake"]._healthy is False
        assert isinstance(drivers["simulated"], SimulatedDriver)
        assert drivers["simulated"].behavior("vpc").ready_after == 1


class TestKindBehavior:
    """Tests for KindBehavior parsing."""

    def test_unknown_option(self):
        with pytest.raises(ValueError, match="ready_afer"):
            KindBehavior.from_dict({"ready_afer": 2})

    def test_unknown_error_name(self):
        with pytest.raises(ValueError, match="create_error"):
            KindBehavior.from_dict({"create_error": "explode"})


class TestSimulatedDriver:
    """Tests for SimulatedDriver."""

    @pytest.mark.asyncio
    async def test_create_poll_delete(self):
        """Test the basic lifecycle."""
        driver = SimulatedDriver(kinds={"vpc": {"ready_after": 1}})

        created = await driver.create("vpc", {"cidr": "10.0.0.0/16"})
        first = await driver.poll("vpc", created.id)
        second = await driver.poll("vpc", created.id)
        await driver.delete("vpc", created.id, {})

        assert created.id == "vpc-00000001"
        assert created.attributes["arn"] == "arn:sim:vpc:vpc-00000001"
        assert first.state == ResourceState.PENDING
        assert second.state == ResourceState.READY
        assert second.status == "available"
        assert (await driver.poll("vpc", created.id)).state == ResourceState.DELETED
        assert driver.live_resources == []

    @pytest.mark.asyncio
    async def test_create_errors(self):
        """Test scripted create errors map to the error taxonomy."""
        driver = SimulatedDriver(
            kinds={"a": {"create_error": "validation"}, "b": {"create_error": "fatal"}}
        )

        with pytest.raises(ValidationError):
            await driver.create("a", {})
        with pytest.raises(DriverError):
            await driver.create("b", {})

    @pytest.mark.asyncio
    async def test_transient_then_success(self):
        """Test transient failures clear after the configured count."""
        driver = SimulatedDriver(default={"transient_create_failures": 1})

        with pytest.raises(TransientError):
            await driver.create("a", {})
        assert (await driver.create("a", {})).id == "a-00000001"

    @pytest.mark.asyncio
    async def test_delete_unknown(self):
        """Test deleting an unknown id reports not found."""
        with pytest.raises(ResourceNotFoundError):
            await SimulatedDriver().delete("vpc", "vpc-404", {})

    @pytest.mark.asyncio
    async def test_delayed_delete(self):
        """Test deleted_after keeps the resource deleting for a few polls."""
        driver = SimulatedDriver(kinds={"nat": {"deleted_after": 1}})
        created = await driver.create("nat", {})
        await driver.delete("nat", created.id, {})

        assert (await driver.poll("nat", created.id)).status == "deleting"
        assert (await driver.poll("nat", created.id)).state == ResourceState.DELETED

    @pytest.mark.asyncio
    async def test_configure_and_calls(self):
        """Test behavior can be changed and calls are recorded."""
        driver = SimulatedDriver()
        driver.configure("db", fail_after=0)
        created = await driver.create("db", {"engine": "postgres"})

        assert (await driver.poll("db", created.id)).state == ResourceState.FAILED
        assert driver.calls == [("create", "db", created.id), ("poll", "db", created.id)]
        assert driver.params_for(created.id) == {"engine": "postgres"}

    @pytest.mark.asyncio
    async def test_unhealthy(self):
        health = await check_health(SimulatedDriver(healthy=False))

        assert not health.usable
