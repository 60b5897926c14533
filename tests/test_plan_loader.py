"""Tests for plans/loader.py.

Tests for reading plan files into Plan objects.
"""

import pytest

from stepwise.core.errors import ConfigurationError, PlanValidationError
from stepwise.plans.loader import load_plan, parse_plan
from stepwise.plans.models import ReadinessPolicy


@pytest.fixture
def vpc_plan(tmp_path):
    """Create a small plan file."""
    plan_file = tmp_path / "vpc.yaml"
    plan_file.write_text("""
name: vpc-getting-started
description: VPC and subnet
variables:
  cidr: 10.0.0.0/16
defaults:
  readiness: {timeout: 120, interval: 5}
drivers:
  simulated:
    kinds:
      vpc: {ready_after: 2}
steps:
  - name: vpc
    kind: vpc
    params: {cidr_block: "${vars.cidr}"}
    readiness: true
  - kind: subnet
    params: {vpc_id: "${steps.vpc.id}"}
    readiness: {interval: 2, status: available}
    teardown:
      wait: {timeout: 60}
""")
    return plan_file


class TestLoadPlan:
    """Tests for load_plan."""

    def test_loads_steps_in_order(self, vpc_plan, settings):
        """Test steps keep file order and names default from kind."""
        plan = load_plan(vpc_plan, settings)

        assert plan.name == "vpc-getting-started"
        assert [s.name for s in plan.steps] == ["vpc", "subnet-1"]
        assert plan.variables == {"cidr": "10.0.0.0/16"}
        assert plan.driver == "simulated"

    def test_readiness_true_uses_defaults(self, vpc_plan, settings):
        """Test `readiness: true` takes the plan defaults."""
        plan = load_plan(vpc_plan, settings)

        assert plan.steps[0].readiness == ReadinessPolicy(
            timeout=120, interval=5, backoff=1, max_interval=10
        )

    def test_readiness_overrides_merge(self, vpc_plan, settings):
        """Test step readiness fields override defaults field by field."""
        policy = load_plan(vpc_plan, settings).steps[1].readiness

        assert policy.timeout == 120
        assert policy.interval == 2
        assert policy.status == "available"

    def test_teardown_wait(self, vpc_plan, settings):
        """Test teardown.wait merges with defaults."""
        wait = load_plan(vpc_plan, settings).steps[1].teardown.wait

        assert wait.timeout == 60
        assert wait.interval == 5

    def test_inline_driver_options(self, vpc_plan, settings):
        """Test inline driver options are wrapped as options."""
        plan = load_plan(vpc_plan, settings)

        assert plan.drivers["simulated"].options == {"kinds": {"vpc": {"ready_after": 2}}}
        assert plan.drivers["simulated"].factory is None

    def test_missing_file(self, tmp_path, settings):
        """Test a missing plan file is a configuration error."""
        with pytest.raises(ConfigurationError, match="not found"):
            load_plan(tmp_path / "nope.yaml", settings)

    def test_invalid_yaml(self, tmp_path, settings):
        """Test unparseable YAML is a validation error."""
        plan_file = tmp_path / "bad.yaml"
        plan_file.write_text("steps: [\n")

        with pytest.raises(PlanValidationError):
            load_plan(plan_file, settings)

    def test_name_defaults_to_file_stem(self, tmp_path, settings):
        """Test plans without a name use the file name."""
        plan_file = tmp_path / "teardown-demo.yaml"
        plan_file.write_text("steps: []\n")

        assert load_plan(plan_file, settings).name == "teardown-demo"


class TestParsePlan:
    """Tests for parse_plan."""

    def test_empty_document(self, settings):
        """Test an empty document is an empty plan."""
        plan = parse_plan(None, settings)

        assert plan.steps == []

    def test_no_readiness_means_no_wait(self, settings):
        """Test steps without readiness are not polled."""
        plan = parse_plan({"steps": [{"kind": "eip"}]}, settings)

        assert plan.steps[0].readiness is None

    def test_unknown_step_field(self, settings):
        """Test typos in step fields are reported."""
        with pytest.raises(PlanValidationError) as exc_info:
            parse_plan({"steps": [{"kind": "vpc", "parms": {}}]}, settings)

        assert "parms" in exc_info.value.problems[0]

    def test_missing_kind(self, settings):
        """Test a step without kind is reported."""
        with pytest.raises(PlanValidationError) as exc_info:
            parse_plan({"steps": [{"name": "vpc"}]}, settings)

        assert "kind is required" in exc_info.value.problems[0]

    def test_teardown_shorthand(self, settings):
        """Test `teardown: retain` is accepted."""
        plan = parse_plan({"steps": [{"kind": "bucket", "teardown": "retain"}]}, settings)

        assert plan.steps[0].teardown.retain

    def test_driver_factory_config(self, settings):
        """Test drivers with a factory keep it."""
        plan = parse_plan(
            {"drivers": {"aws": {"factory": "my.aws:Driver", "options": {"region": "us-east-1"}}}},
            settings,
        )

        assert plan.drivers["aws"].factory == "my.aws:Driver"
        assert plan.drivers["aws"].options == {"region": "us-east-1"}

    def test_step_interval_above_inherited_cap(self, settings):
        """Test a step interval above the default max_interval drops the cap."""
        plan = parse_plan(
            {"steps": [{"kind": "nat", "readiness": {"interval": 30}}]}, settings
        )

        assert plan.steps[0].readiness.max_interval is None
        assert plan.steps[0].readiness.delay(0) == 30

    def test_steps_must_be_list(self, settings):
        """Test a mapping of steps is rejected."""
        with pytest.raises(PlanValidationError):
            parse_plan({"steps": {"vpc": {"kind": "vpc"}}}, settings)
