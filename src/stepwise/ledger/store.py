"""Durable, append-only ledger file (JSON Lines).

Every change is written as one line and fsynced before the in-memory
ledger moves on, so a crashed run can still be cleaned up from its file::

    {"event": "run", "run_id": "...", "plan": "...", "started_at": "..."}
    {"event": "created", "record": {...}}
    {"event": "released", "sequence": 3}
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

from stepwise.core.errors import ConfigurationError
from stepwise.ledger.models import Ledger, ResourceRecord

logger = structlog.get_logger()

LEDGER_SUFFIX = ".ledger.jsonl"


def default_ledger_path(state_dir: str | Path, plan_name: str, run_id: str) -> Path:
    return Path(state_dir) / f"{plan_name}-{run_id}{LEDGER_SUFFIX}"


class LedgerStore:
    """Appends ledger events to a file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def start_run(self, run_id: str, plan_name: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._write(
            {
                "event": "run",
                "run_id": run_id,
                "plan": plan_name,
                "started_at": datetime.now(timezone.utc).isoformat(),
            }
        )

    def record_created(self, record: ResourceRecord) -> None:
        self._write({"event": "created", "record": record.to_dict()})
        logger.debug("ledger_appended", path=str(self.path), sequence=record.sequence)

    def record_released(self, record: ResourceRecord) -> None:
        self._write({"event": "released", "sequence": record.sequence})
        logger.debug("ledger_released", path=str(self.path), sequence=record.sequence)

    def _write(self, event: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        line = json.dumps(event, sort_keys=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(line + "\n")
            f.flush()
            os.fsync(f.fileno())


@dataclass
class LedgerFile:
    """Contents of a ledger file after replaying its events."""

    path: Path
    records: List[ResourceRecord] = field(default_factory=list)
    run_id: Optional[str] = None
    plan: Optional[str] = None
    started_at: Optional[str] = None
    next_sequence: int = 1

    def to_ledger(self, *, attach: bool = True) -> Ledger:
        """Build a Ledger whose releases are appended back to the same file."""
        listener = LedgerStore(self.path) if attach else None
        return Ledger(self.records, listener=listener, next_sequence=self.next_sequence)


def read_ledger_file(path: str | Path) -> LedgerFile:
    """Replay a ledger file; a truncated last line (crash mid-write) is ignored."""
    ledger_path = Path(path)
    if not ledger_path.exists():
        raise ConfigurationError(f"Ledger file not found: {ledger_path}")

    result = LedgerFile(path=ledger_path)
    outstanding: Dict[int, ResourceRecord] = {}
    highest = 0

    lines = ledger_path.read_text(encoding="utf-8").splitlines()
    for number, line in enumerate(lines, 1):
        if not line.strip():
            continue
        try:
            event = json.loads(line)
        except json.JSONDecodeError as e:
            if number == len(lines):
                logger.warning("ledger_truncated_line", path=str(ledger_path), line=number)
                break
            raise ConfigurationError(f"Corrupt ledger {ledger_path} at line {number}: {e}") from e

        kind = event.get("event")
        if kind == "run":
            result.run_id = event.get("run_id")
            result.plan = event.get("plan")
            result.started_at = event.get("started_at")
        elif kind == "created":
            record = ResourceRecord.from_dict(event["record"])
            outstanding[record.sequence] = record
            highest = max(highest, record.sequence)
        elif kind == "released":
            outstanding.pop(int(event["sequence"]), None)
        else:
            logger.warning("ledger_unknown_event", path=str(ledger_path), line=number, event=kind)

    result.records = sorted(outstanding.values(), key=lambda r: r.sequence)
    result.next_sequence = highest + 1
    return result


def load_ledger(path: str | Path, *, attach: bool = True) -> Ledger:
    """Load the outstanding records of a ledger file."""
    return read_ledger_file(path).to_ledger(attach=attach)
