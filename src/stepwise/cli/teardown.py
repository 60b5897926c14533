"""
CLI command for tearing down the outstanding resources of a ledger file.

Used to clean up after a run that kept its resources, or one that was killed
before it could tear down.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from stepwise.cli.drivers import load_drivers, merge_driver_configs
from stepwise.cli.report import print_ledger, print_teardown_json, print_teardown_results
from stepwise.cli.ux import confirm, info, is_interactive, success, warning
from stepwise.config import get_settings, load_config
from stepwise.core.errors import ConfigurationError, ExitCode, main_with_error_handling
from stepwise.ledger.store import read_ledger_file
from stepwise.orchestration import Orchestrator, needing_attention


@main_with_error_handling()
def teardown_command(
    ledger_file: str,
    yes: bool = False,
    config_path: Optional[str] = None,
    output_format: str = "text",
) -> int:
    """
    Reverse every outstanding record in a ledger, newest first.

    Args:
        ledger_file: Path to the run's ledger file
        yes: Skip the confirmation prompt
        config_path: Optional config file declaring drivers
        output_format: Output format (text, json)

    Returns:
        Exit code (0 when the ledger is empty afterwards, 2 otherwise)
    """
    contents = read_ledger_file(ledger_file)
    text = output_format != "json"

    if not contents.records:
        if text:
            info(f"Ledger {ledger_file} has no outstanding resources")
        else:
            print_teardown_json([], ledger_path=ledger_file)
        return ExitCode.SUCCESS

    if text:
        print_ledger(
            list(reversed(contents.records)),
            title=f"Outstanding resources (plan {contents.plan or '?'}, run {contents.run_id or '?'})",
        )

    if not yes:
        if not (text and is_interactive()):
            raise ConfigurationError("Refusing to tear down without confirmation; pass --yes")
        if not confirm(f"Delete {len(contents.records)} resources?", default=False):
            info("Teardown aborted")
            return ExitCode.SUCCESS

    names = []
    for record in contents.records:
        if record.driver not in names:
            names.append(record.driver)
    config = load_config(config_path)
    drivers = load_drivers(names, merge_driver_configs(config), strict=False)

    ledger = contents.to_ledger()
    results = asyncio.run(Orchestrator(drivers, settings=get_settings()).teardown(ledger))

    if output_format == "json":
        print_teardown_json(results, ledger_path=ledger_file)
    else:
        print_teardown_results(results)

    if needing_attention(results):
        if text:
            warning(f"Some resources remain; re-run: stepwise teardown {ledger_file}")
        return ExitCode.NEEDS_ATTENTION
    if text:
        success("Ledger is empty")
    return ExitCode.SUCCESS
