"""
CLI command for running a plan end to end.

A run creates each step's resource in order. When a step fails (or the run
is interrupted with Ctrl-C) everything created so far is torn down in
reverse. On success the resources are kept or cleaned up according to the
cleanup policy: ``prompt`` asks, ``always`` tears down, ``never`` keeps them.
"""

from __future__ import annotations

import asyncio
import signal
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import structlog

from stepwise.cli.drivers import load_drivers, merge_driver_configs
from stepwise.cli.report import (
    print_ledger,
    print_run_json,
    print_run_summary,
    print_teardown_results,
)
from stepwise.cli.ux import confirm, console, info, is_interactive, warning
from stepwise.config import Settings, get_settings, load_config
from stepwise.core.errors import ExitCode, ValidationError, main_with_error_handling
from stepwise.ledger.store import LEDGER_SUFFIX, LedgerStore, default_ledger_path
from stepwise.logging import configure_logging
from stepwise.orchestration import Orchestrator, RunResult, new_run_id, needing_attention
from stepwise.plans import Plan, load_plan

logger = structlog.get_logger()

CLEANUP_POLICIES = ("prompt", "always", "never")


def parse_variables(pairs: Optional[List[str]]) -> Dict[str, str]:
    """Parse ``key=value`` overrides given on the command line."""
    variables: Dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ValidationError(f"Invalid variable '{pair}', expected key=value")
        variables[key.strip()] = value
    return variables


def log_path_for(ledger_path: Path) -> Path:
    """Run log that sits next to the ledger file."""
    name = ledger_path.name
    if name.endswith(LEDGER_SUFFIX):
        name = name[: -len(LEDGER_SUFFIX)]
    return ledger_path.with_name(f"{name}.log")


def _install_interrupt_handler(loop: asyncio.AbstractEventLoop, event: asyncio.Event) -> bool:
    def on_interrupt() -> None:
        if event.is_set():
            return
        logger.warning("run_interrupted")
        console.print("\n[warning]Interrupted, tearing down what was created...[/warning]")
        event.set()

    try:
        loop.add_signal_handler(signal.SIGINT, on_interrupt)
    except (NotImplementedError, RuntimeError, ValueError):
        # Not on the main thread, or no signal support on this platform
        return False
    return True


async def execute_plan(
    plan: Plan,
    drivers: Mapping[str, Any],
    *,
    settings: Settings,
    store: Optional[LedgerStore],
    run_id: str,
    auto_teardown: Optional[bool] = None,
) -> RunResult:
    """Run a plan with Ctrl-C wired to cancellation."""
    cancel_event = asyncio.Event()
    orchestrator = Orchestrator(drivers, settings=settings, store=store, cancel_event=cancel_event)
    loop = asyncio.get_running_loop()
    installed = _install_interrupt_handler(loop, cancel_event)
    try:
        return await orchestrator.run(plan, auto_teardown=auto_teardown, run_id=run_id)
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


def should_clean_up(policy: str, *, yes: bool, interactive: bool, message: str) -> bool:
    """Decide whether to tear down resources the run left in place."""
    if policy == "never":
        return False
    if policy == "always" or yes:
        return True
    if not interactive:
        return False
    return confirm(message, default=False)


@main_with_error_handling()
def run_command(
    plan_file: str,
    ledger_file: Optional[str] = None,
    variables: Optional[List[str]] = None,
    cleanup: Optional[str] = None,
    auto_teardown: Optional[bool] = None,
    yes: bool = False,
    log_file: Optional[str] = None,
    config_path: Optional[str] = None,
    output_format: str = "text",
    verbose: bool = False,
) -> int:
    """
    Run a plan.

    Args:
        plan_file: Path to plan YAML file
        ledger_file: Where to write the ledger (default: under the state dir)
        variables: ``key=value`` overrides for plan variables
        cleanup: Cleanup policy after success (prompt, always, never)
        auto_teardown: Tear down automatically when a step fails
        yes: Answer yes to the cleanup prompt
        log_file: Run log path (default: next to the ledger)
        config_path: Optional config file declaring drivers
        output_format: Output format (text, json)
        verbose: Show detailed progress

    Returns:
        Exit code (0 success, 1 plan failed, 2 needs attention, 130 cancelled)
    """
    settings = get_settings()
    policy = cleanup or settings.cleanup_policy
    if policy not in CLEANUP_POLICIES:
        raise ValidationError(
            f"Unknown cleanup policy '{policy}'",
            details={"allowed": ", ".join(CLEANUP_POLICIES)},
        )

    plan = load_plan(plan_file, settings)
    plan.variables.update(parse_variables(variables))

    config = load_config(config_path)
    drivers = load_drivers(plan.driver_names(), merge_driver_configs(config, plan.drivers))

    run_id = new_run_id()
    ledger_path = (
        Path(ledger_file)
        if ledger_file
        else default_ledger_path(settings.state_dir, plan.name, run_id)
    )
    run_log = Path(log_file or settings.log_file or log_path_for(ledger_path))
    configure_logging(
        level=settings.log_level if verbose else "WARNING",
        log_file=run_log,
        file_level=settings.log_level,
    )

    text = output_format != "json"
    if text:
        info(f"Running plan {plan.name} ({len(plan.steps)} steps), run {run_id}")
        console.print(f"[muted]Ledger: {ledger_path}[/muted]")
        console.print(f"[muted]Log:    {run_log}[/muted]")

    store = LedgerStore(ledger_path)
    result = asyncio.run(
        execute_plan(
            plan,
            drivers,
            settings=settings,
            store=store,
            run_id=run_id,
            auto_teardown=auto_teardown,
        )
    )

    if text:
        print_run_summary(result, verbose=verbose)
        if result.teardown is not None:
            print_teardown_results(result.teardown)

    # Whatever is still in the ledger (success, or failure without auto teardown)
    if result.ledger and result.teardown is None:
        if text:
            console.print()
            print_ledger(result.ledger.records, title="Created resources")
        prompt = (
            "Tear down the resources created by this run?"
            if result.success
            else "The run failed. Tear down the resources it created?"
        )
        interactive = text and is_interactive()
        if text and policy == "prompt" and not (yes or interactive):
            info("Non-interactive session, keeping resources (use --yes or --cleanup always)")
        if should_clean_up(policy, yes=yes, interactive=interactive, message=prompt):
            result.teardown = asyncio.run(
                Orchestrator(drivers, settings=settings).teardown(result.ledger)
            )
            if text:
                print_teardown_results(result.teardown)
        elif text:
            console.print()
            console.print("[muted]To clean up later, run:[/muted]")
            console.print(f"  [info]stepwise teardown {ledger_path}[/info]")

    if output_format == "json":
        print_run_json(result, ledger_path=str(ledger_path))

    if needing_attention(result.teardown or []):
        if text:
            warning(f"Resources remain; the ledger is kept at {ledger_path}")
        return ExitCode.NEEDS_ATTENTION
    return result.exit_code
