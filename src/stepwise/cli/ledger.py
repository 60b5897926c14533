"""
CLI command for inspecting ledger files.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from stepwise.cli.report import print_ledger
from stepwise.cli.ux import console, info, print_key_value
from stepwise.config import get_settings
from stepwise.core.errors import main_with_error_handling
from stepwise.ledger.store import LEDGER_SUFFIX, read_ledger_file


@main_with_error_handling()
def ledger_command(ledger_file: Optional[str] = None, output_format: str = "text") -> int:
    """Show one ledger file, or list the ledgers in the state directory."""
    if ledger_file is None:
        return _list_ledgers(output_format)

    contents = read_ledger_file(ledger_file)
    if output_format == "json":
        output = {
            "path": str(contents.path),
            "run_id": contents.run_id,
            "plan": contents.plan,
            "started_at": contents.started_at,
            "records": [r.to_dict() for r in contents.records],
        }
        print(json.dumps(output, indent=2))
        return 0

    print_key_value(
        {
            "Plan": contents.plan or "?",
            "Run": contents.run_id or "?",
            "Started": contents.started_at or "?",
            "Outstanding": str(len(contents.records)),
        },
        title=str(contents.path),
    )
    console.print()
    print_ledger(contents.records)
    return 0


def _list_ledgers(output_format: str) -> int:
    state_dir = Path(get_settings().state_dir)
    paths = sorted(state_dir.glob(f"*{LEDGER_SUFFIX}")) if state_dir.exists() else []

    summaries = []
    for path in paths:
        contents = read_ledger_file(path)
        summaries.append(
            {"path": str(path), "plan": contents.plan, "outstanding": len(contents.records)}
        )

    if output_format == "json":
        print(json.dumps({"ledgers": summaries}, indent=2))
        return 0

    if not summaries:
        info(f"No ledgers in {state_dir}")
        return 0
    for summary in summaries:
        marker = "[warning]●[/warning]" if summary["outstanding"] else "[muted]○[/muted]"
        console.print(
            f"  {marker} {summary['path']} [muted]({summary['outstanding']} outstanding)[/muted]"
        )
    return 0
