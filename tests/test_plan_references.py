"""Tests for plans/references.py.

Tests for parsing and resolving ${...} references.
"""

import pytest

from stepwise.core.errors import ValidationError
from stepwise.plans.references import (
    ReferenceResolver,
    StepOutputs,
    is_truthy,
    iter_references,
    parse_reference,
)


@pytest.fixture
def outputs():
    outputs = StepOutputs(order=["vpc", "subnet", "nat"])
    outputs.record("vpc", "vpc-123", "vpc", {"arn": "arn:vpc-123", "cidr": "10.0.0.0/16"})
    outputs.record("subnet", "subnet-456", "subnet", {"zones": ["a", "b"]})
    return outputs


@pytest.fixture
def resolver(outputs):
    return ReferenceResolver(
        outputs,
        variables={"port": 5439, "name": "demo"},
        run_id="20240101-abc",
        run_suffix="deadbeef",
        plan_name="vpc-plan",
        environ={"AWS_REGION": "us-east-1"},
    )


class TestParseReference:
    """Tests for parse_reference."""

    def test_named_step(self):
        """Test steps.NAME.FIELD."""
        ref = parse_reference("steps.vpc.id")

        assert ref.scope == "steps"
        assert ref.target == "vpc"
        assert ref.path == ("id",)

    def test_indexed_step(self):
        """Test step[INDEX].FIELD."""
        ref = parse_reference("step[2].arn")

        assert ref.target == 2
        assert ref.path == ("arn",)

    def test_nested_path(self):
        """Test deeper attribute paths."""
        assert parse_reference("steps.db.endpoint.address").path == ("endpoint", "address")

    def test_variable(self):
        """Test vars.NAME."""
        ref = parse_reference(" vars.cidr ")

        assert (ref.scope, ref.target) == ("vars", "cidr")

    @pytest.mark.parametrize("expression", ["steps.vpc", "run.bogus", "plan.id", "other.x", ""])
    def test_rejects_bad_expressions(self, expression):
        """Test malformed references raise ValueError."""
        with pytest.raises(ValueError):
            parse_reference(expression)


class TestIterReferences:
    """Tests for iter_references."""

    def test_nested_values(self):
        """Test references are found in nested dicts and lists."""
        value = {"a": "${vars.x}", "b": ["${steps.vpc.id}", {"c": "x-${run.suffix}"}], "d": 3}

        assert sorted(iter_references(value)) == ["run.suffix", "steps.vpc.id", "vars.x"]


class TestReferenceResolver:
    """Tests for ReferenceResolver."""

    def test_whole_reference_keeps_type(self, resolver):
        """Test a lone reference yields the raw value."""
        assert resolver.resolve("${vars.port}") == 5439
        assert resolver.resolve("${steps.subnet.zones}") == ["a", "b"]

    def test_interpolation(self, resolver):
        """Test references inside text are interpolated."""
        assert resolver.resolve("${plan.name}-${run.suffix}:${vars.port}") == "vpc-plan-deadbeef:5439"

    def test_step_fields(self, resolver):
        """Test id, kind and attributes of earlier steps."""
        assert resolver.resolve("${steps.vpc.id}") == "vpc-123"
        assert resolver.resolve("${step[0].kind}") == "vpc"
        assert resolver.resolve("${step[1].id}") == "subnet-456"
        assert resolver.resolve("${steps.vpc.arn}") == "arn:vpc-123"

    def test_recurses(self, resolver):
        """Test dicts and lists are resolved recursively."""
        value = {"vpc": "${steps.vpc.id}", "tags": [{"Name": "${vars.name}"}], "count": 2}

        assert resolver.resolve(value) == {
            "vpc": "vpc-123",
            "tags": [{"Name": "demo"}],
            "count": 2,
        }

    def test_run_and_env(self, resolver):
        """Test run id and environment variables."""
        assert resolver.resolve("${run.id}") == "20240101-abc"
        assert resolver.resolve("${env.AWS_REGION}") == "us-east-1"

    def test_missing_env(self, resolver):
        """Test an unset environment variable is a validation error."""
        with pytest.raises(ValidationError, match="HOME_REGION"):
            resolver.resolve("${env.HOME_REGION}")

    def test_step_without_result(self, resolver):
        """Test a step that has not run yet cannot be referenced."""
        with pytest.raises(ValidationError, match="not produced"):
            resolver.resolve("${steps.nat.id}")

    def test_skipped_step(self, resolver, outputs):
        """Test a skipped step cannot be referenced."""
        outputs.skip("nat")

        with pytest.raises(ValidationError, match="skipped"):
            resolver.resolve("${steps.nat.id}")

    def test_missing_attribute(self, resolver):
        """Test a missing attribute names the path."""
        with pytest.raises(ValidationError, match="steps.vpc.endpoint"):
            resolver.resolve("${steps.vpc.endpoint}")

    def test_index_out_of_range(self, resolver):
        """Test an index past the plan is rejected."""
        with pytest.raises(ValidationError, match="out of range"):
            resolver.resolve("${step[9].id}")

    def test_undefined_variable(self, resolver):
        """Test unknown variables are rejected."""
        with pytest.raises(ValidationError, match="Undefined variable"):
            resolver.resolve("${vars.nope}")

    def test_plain_values_untouched(self, resolver):
        """Test values without references pass through."""
        assert resolver.resolve("plain") == "plain"
        assert resolver.resolve(None) is None
        assert resolver.resolve(1.5) == 1.5


class TestIsTruthy:
    """Tests for is_truthy."""

    @pytest.mark.parametrize("value", [True, "true", "yes", 1, "1", ["x"]])
    def test_truthy(self, value):
        assert is_truthy(value)

    @pytest.mark.parametrize("value", [False, None, "", "false", "No", "0", "off", 0, []])
    def test_falsy(self, value):
        assert not is_truthy(value)
