"""Result types for plan runs and teardowns."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from stepwise.core.errors import ExitCode
from stepwise.ledger.models import Ledger, ResourceRecord


class StepOutcome(str, Enum):
    CREATED = "created"
    READY = "ready"
    SKIPPED = "skipped"
    FAILED = "failed"
    CANCELLED = "cancelled"


class RunOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TeardownStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class StepResult:
    """What happened to one step."""

    name: str
    kind: str
    outcome: StepOutcome
    resource_id: Optional[str] = None
    attempts: int = 0
    polls: int = 0
    error: Optional[str] = None
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind,
            "outcome": self.outcome.value,
            "resource_id": self.resource_id,
            "attempts": self.attempts,
            "polls": self.polls,
            "error": self.error,
            "duration_seconds": round(self.duration_seconds, 3),
        }


@dataclass(frozen=True)
class TeardownResult:
    """Outcome of reversing one ledger record."""

    record: ResourceRecord
    status: TeardownStatus
    reason: Optional[str] = None

    @property
    def needs_attention(self) -> bool:
        return self.status == TeardownStatus.FAILED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence": self.record.sequence,
            "kind": self.record.kind,
            "id": self.record.id,
            "step": self.record.step,
            "status": self.status.value,
            "reason": self.reason,
        }


def needing_attention(results: List[TeardownResult]) -> List[TeardownResult]:
    """Teardown results whose resources are still live and need manual cleanup."""
    return [r for r in results if r.needs_attention]


@dataclass
class RunResult:
    """Result of running a plan."""

    plan_name: str
    run_id: str
    outcome: RunOutcome
    ledger: Ledger
    steps: List[StepResult] = field(default_factory=list)
    failed_step: Optional[str] = None
    error: Optional[str] = None
    teardown: Optional[List[TeardownResult]] = None
    duration_seconds: float = 0.0
    created: List[ResourceRecord] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.outcome == RunOutcome.SUCCEEDED

    @property
    def needs_attention(self) -> List[TeardownResult]:
        return needing_attention(self.teardown or [])

    @property
    def exit_code(self) -> ExitCode:
        if self.outcome == RunOutcome.SUCCEEDED:
            return ExitCode.SUCCESS
        if self.needs_attention:
            return ExitCode.NEEDS_ATTENTION
        if self.outcome == RunOutcome.CANCELLED:
            return ExitCode.CANCELLED
        return ExitCode.PLAN_FAILED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "plan": self.plan_name,
            "run_id": self.run_id,
            "outcome": self.outcome.value,
            "success": self.success,
            "failed_step": self.failed_step,
            "error": self.error,
            "duration_seconds": round(self.duration_seconds, 3),
            "steps": [s.to_dict() for s in self.steps],
            "created": [r.to_dict() for r in self.created],
            "ledger": [r.to_dict() for r in self.ledger],
            "teardown": None if self.teardown is None else [t.to_dict() for t in self.teardown],
            "exit_code": int(self.exit_code),
        }
