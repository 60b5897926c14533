"""
CLI command for previewing and validating a plan without creating anything.
"""

from __future__ import annotations

import json
from typing import List, Optional

from stepwise.cli.drivers import merge_driver_configs
from stepwise.cli.ux import console, error, header, success
from stepwise.config import get_settings, load_config
from stepwise.core.errors import ExitCode, main_with_error_handling
from stepwise.drivers import list_drivers
from stepwise.plans import Plan, Step, load_plan, validate_plan
from stepwise.plans.references import iter_references


def _readiness_label(step: Step) -> str:
    policy = step.readiness
    if policy is None:
        return "none"
    label = f"{policy.timeout:g}s, every {policy.interval:g}s"
    if policy.backoff > 1:
        label += f" x{policy.backoff:g}"
    if policy.status:
        label += f", status={policy.status}"
    return label


def print_plan_summary(plan: Plan, problems: List[str], plan_file: str) -> None:
    """Print the ordered steps and any validation problems."""
    console.print()
    header(f"Plan: {plan.name}")
    if plan.description:
        console.print(f"[muted]{plan.description}[/muted]")
    console.print()

    if not plan.steps:
        console.print("[muted]No steps; running this plan creates nothing.[/muted]")

    for index, step in enumerate(plan.steps, 1):
        console.print(f"  [info]{index:>2}.[/info] [bold]{step.name}[/bold] ({step.kind})")
        console.print(f"      [muted]└[/muted] driver: {plan.driver_for(step)}")
        console.print(f"      [muted]└[/muted] readiness: {_readiness_label(step)}")
        console.print(f"      [muted]└[/muted] teardown: {step.teardown.action}")
        if step.when is not None:
            console.print(f"      [muted]└[/muted] when: {step.when}")
        refs = sorted(set(iter_references(step.params)))
        if refs:
            console.print(f"      [muted]└[/muted] uses: {', '.join(refs)}")

    console.print()
    if problems:
        error(f"{len(problems)} problems found:")
        for problem in problems:
            console.print(f"   [error]•[/error] {problem}")
        console.print()
        return

    success(f"{len(plan.steps)} steps valid")
    console.print()
    console.print("[muted]To run this plan:[/muted]")
    console.print(f"  [info]stepwise run {plan_file}[/info]")
    console.print()


def print_plan_json(plan: Plan, problems: List[str]) -> None:
    output = {
        "name": plan.name,
        "driver": plan.driver,
        "steps": [
            {
                "name": step.name,
                "kind": step.kind,
                "driver": plan.driver_for(step),
                "params": step.params,
                "readiness": step.readiness.to_dict() if step.readiness else None,
                "teardown": step.teardown.to_dict(),
                "when": step.when,
            }
            for step in plan.steps
        ],
        "problems": problems,
        "valid": not problems,
    }
    print(json.dumps(output, indent=2, default=str))


@main_with_error_handling()
def plan_command(
    plan_file: str,
    output_format: str = "text",
    config_path: Optional[str] = None,
) -> int:
    """
    Preview a plan (dry-run) and check it for problems.

    Args:
        plan_file: Path to plan YAML file
        output_format: Output format (text, json)
        config_path: Optional config file declaring extra drivers

    Returns:
        Exit code (0 when valid, 12 when the plan has problems)
    """
    plan = load_plan(plan_file, get_settings())
    config = load_config(config_path)

    known = {spec.name for spec in list_drivers()}
    known.update(merge_driver_configs(config, plan.drivers))
    problems = validate_plan(plan, known_drivers=known)

    if output_format == "json":
        print_plan_json(plan, problems)
    else:
        print_plan_summary(plan, problems, plan_file)

    return ExitCode.VALIDATION_ERROR if problems else ExitCode.SUCCESS
