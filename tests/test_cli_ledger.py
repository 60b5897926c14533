"""Tests for the ledger and drivers CLI commands."""

import json

from stepwise.cli.drivers import drivers_command, load_drivers, merge_driver_configs
from stepwise.cli.ledger import ledger_command
from stepwise.cli.run import run_command
from stepwise.config.loader import DriverConfig, StepwiseConfig
from stepwise.core.errors import ExitCode
from stepwise.drivers.simulated import SimulatedDriver

PLAN = """
name: queue-stack
steps:
  - name: queue
    kind: queue
  - name: topic
    kind: topic
"""


class TestLedgerCommand:
    """Tests for ledger_command."""

    def test_show_ledger(self, write_plan, tmp_path, capsys):
        """Test a ledger file is shown with its outstanding records."""
        path = tmp_path / "stack.ledger.jsonl"
        run_command(write_plan(PLAN), ledger_file=str(path), cleanup="never")
        capsys.readouterr()

        code = ledger_command(str(path))

        out = capsys.readouterr().out
        assert code == 0
        assert "queue-stack" in out
        assert "topic-00000002" in out

    def test_show_ledger_json(self, write_plan, tmp_path, capsys):
        path = tmp_path / "stack.ledger.jsonl"
        run_command(write_plan(PLAN), ledger_file=str(path), cleanup="never")
        capsys.readouterr()

        ledger_command(str(path), output_format="json")

        output = json.loads(capsys.readouterr().out)
        assert output["plan"] == "queue-stack"
        assert [r["sequence"] for r in output["records"]] == [1, 2]

    def test_list_ledgers(self, write_plan, capsys):
        """Test ledgers in the state directory are listed."""
        run_command(write_plan(PLAN), cleanup="never")
        run_command(write_plan(PLAN), cleanup="always")
        capsys.readouterr()

        ledger_command(output_format="json")

        ledgers = json.loads(capsys.readouterr().out)["ledgers"]
        assert len(ledgers) == 2
        assert sorted(item["outstanding"] for item in ledgers) == [0, 2]

    def test_list_empty_state_dir(self, capsys):
        assert ledger_command() == 0
        assert "No ledgers" in capsys.readouterr().out

    def test_missing_file(self, tmp_path):
        assert ledger_command(str(tmp_path / "gone.ledger.jsonl")) == ExitCode.CONFIG_ERROR


class TestDriversCommand:
    """Tests for drivers_command and driver loading helpers."""

    def test_lists_simulated(self, capsys):
        assert drivers_command(output_format="json") == 0

        names = [d["name"] for d in json.loads(capsys.readouterr().out)["drivers"]]
        assert "simulated" in names

    def test_lists_configured(self, tmp_path, capsys):
        """Test drivers from the config file are listed with their factory."""
        config = tmp_path / "stepwise.yaml"
        config.write_text(
            "drivers:\n  aws:\n    factory: stepwise.drivers.simulated:SimulatedDriver\n"
        )

        drivers_command(config_path=str(config), output_format="json")

        rows = json.loads(capsys.readouterr().out)["drivers"]
        assert {"name": "aws", "source": "stepwise.drivers.simulated:SimulatedDriver",
                "description": "configured"} in rows

    def test_merge_prefers_plan_options(self):
        """Test plan driver settings override the config file's."""
        config = StepwiseConfig(
            drivers={"simulated": DriverConfig("simulated", options={"healthy": True})}
        )

        merged = merge_driver_configs(
            config, {"simulated": DriverConfig("simulated", options={"healthy": False})}
        )

        assert merged["simulated"].options["healthy"] is False

    def test_non_strict_skips_unknown(self):
        """Test non-strict loading leaves out drivers that cannot be built."""
        drivers = load_drivers(["aws", "simulated"], {}, strict=False)

        assert list(drivers) == ["simulated"]
        assert isinstance(drivers["simulated"], SimulatedDriver)
