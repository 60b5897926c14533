"""
Console rendering for runs, ledgers and teardowns.
"""

from __future__ import annotations

import json
from typing import List, Optional, Sequence

from stepwise.cli.ux import console, print_table
from stepwise.ledger.models import ResourceRecord
from stepwise.orchestration.results import (
    RunResult,
    StepOutcome,
    TeardownResult,
    TeardownStatus,
)

_STEP_STYLE = {
    StepOutcome.READY: ("green", "✓"),
    StepOutcome.CREATED: ("green", "✓"),
    StepOutcome.SKIPPED: ("dim", "-"),
    StepOutcome.FAILED: ("red", "✗"),
    StepOutcome.CANCELLED: ("yellow", "⚠"),
}

_TEARDOWN_STYLE = {
    TeardownStatus.SUCCEEDED: ("green", "✓"),
    TeardownStatus.SKIPPED: ("dim", "-"),
    TeardownStatus.FAILED: ("red", "✗"),
}


def print_run_summary(result: RunResult, verbose: bool = False) -> None:
    """Print one line per step, then the run outcome."""
    console.print()
    for step in result.steps:
        color, icon = _STEP_STYLE[step.outcome]
        detail = step.resource_id or step.outcome.value
        if step.outcome == StepOutcome.READY and verbose:
            detail = f"{detail} [dim](polled {step.polls}x)[/dim]"
        console.print(f"  [{color}]{icon} {step.name:<24}[/{color}] {step.kind:<20} {detail}")
        if step.error:
            console.print(f"      [dim]{step.error}[/dim]")

    console.print()
    duration = f" in {result.duration_seconds:.1f}s" if result.duration_seconds > 0 else ""
    if result.success:
        console.print(
            f"[bold green]Plan {result.plan_name} completed: "
            f"{len(result.created)} resources created{duration}[/bold green]"
        )
    else:
        console.print(
            f"[bold red]Plan {result.plan_name} {result.outcome.value} "
            f"at step '{result.failed_step}'{duration}[/bold red]"
        )


def print_ledger(records: Sequence[ResourceRecord], title: str = "Ledger") -> None:
    if not records:
        console.print(f"[dim]{title}: no outstanding resources[/dim]")
        return
    print_table(
        title,
        ["#", "Step", "Kind", "ID", "Teardown"],
        [
            [str(r.sequence), r.step, r.kind, r.id, r.teardown.action]
            for r in records
        ],
    )


def print_teardown_results(results: List[TeardownResult]) -> None:
    console.print()
    if not results:
        console.print("[dim]Nothing to tear down[/dim]")
        return

    console.print("[bold]Teardown:[/bold]")
    for item in results:
        color, icon = _TEARDOWN_STYLE[item.status]
        reason = f" [dim]({item.reason})[/dim]" if item.reason else ""
        console.print(f"  [{color}]{icon} {item.record.label}[/{color}]{reason}")

    remaining = [r for r in results if r.needs_attention]
    if remaining:
        console.print()
        console.print(
            f"[bold yellow]{len(remaining)} resources need manual cleanup:[/bold yellow]"
        )
        for item in remaining:
            console.print(f"  [dim]•[/dim] {item.record.kind} {item.record.id}")


def print_run_json(result: RunResult, ledger_path: Optional[str] = None) -> None:
    output = result.to_dict()
    output["ledger_path"] = ledger_path
    print(json.dumps(output, indent=2))


def print_teardown_json(results: List[TeardownResult], ledger_path: Optional[str] = None) -> None:
    output = {
        "ledger_path": ledger_path,
        "teardown": [r.to_dict() for r in results],
        "needs_attention": sum(1 for r in results if r.needs_attention),
    }
    print(json.dumps(output, indent=2))
