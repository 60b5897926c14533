"""Orchestration package - plan execution, readiness polling, teardown."""

from stepwise.orchestration.engine import Orchestrator, new_run_id
from stepwise.orchestration.polling import PollOutcome, interruptible_sleep, wait_for_state
from stepwise.orchestration.results import (
    RunOutcome,
    RunResult,
    StepOutcome,
    StepResult,
    TeardownResult,
    TeardownStatus,
    needing_attention,
)
from stepwise.orchestration.retry import call_with_retry

__all__ = [
    "Orchestrator",
    "PollOutcome",
    "RunOutcome",
    "RunResult",
    "StepOutcome",
    "StepResult",
    "TeardownResult",
    "TeardownStatus",
    "call_with_retry",
    "interruptible_sleep",
    "needing_attention",
    "new_run_id",
    "wait_for_state",
]
