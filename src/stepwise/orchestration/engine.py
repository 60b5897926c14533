"""Execution engine: run a plan, keep the ledger, tear it down in reverse."""

from __future__ import annotations

import asyncio
import os
import secrets
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, List, Mapping, Optional

import structlog

from stepwise.config.settings import Settings, get_settings
from stepwise.core.errors import (
    ConfigurationError,
    ResourceNotFoundError,
    RunCancelled,
    StepwiseError,
    TeardownError,
)
from stepwise.drivers.base import ResourceState, check_health, normalize_create
from stepwise.ledger.models import Ledger, ResourceRecord
from stepwise.ledger.store import LedgerStore
from stepwise.logging import bind_context
from stepwise.orchestration.polling import interruptible_sleep, wait_for_state
from stepwise.orchestration.results import (
    RunOutcome,
    RunResult,
    StepOutcome,
    StepResult,
    TeardownResult,
    TeardownStatus,
)
from stepwise.orchestration.retry import call_with_retry
from stepwise.plans.models import Plan, Step
from stepwise.plans.references import ReferenceResolver, StepOutputs, is_truthy
from stepwise.plans.validator import ensure_valid

logger = structlog.get_logger()

SleepFn = Callable[[float], Awaitable[Any]]


def new_run_id() -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    return f"{stamp}-{secrets.token_hex(3)}"


class Orchestrator:
    """Runs a plan step by step against a set of drivers.

    One instance owns one run's ledger at a time; it is not safe to share an
    instance between concurrent runs.
    """

    def __init__(
        self,
        drivers: Mapping[str, Any],
        *,
        settings: Optional[Settings] = None,
        store: Optional[LedgerStore] = None,
        sleep: Optional[SleepFn] = None,
        clock: Callable[[], float] = time.monotonic,
        cancel_event: Optional[asyncio.Event] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._drivers = dict(drivers)
        self._settings = settings or get_settings()
        self._store = store
        self._sleep: SleepFn = sleep or asyncio.sleep
        self._interruptible = sleep is None
        self._clock = clock
        self._cancel_event = cancel_event
        self._environ = environ if environ is not None else os.environ

    # === Cancellation ===

    def cancel(self) -> None:
        """Request cancellation; the run stops at the next check and tears down."""
        if self._cancel_event is None:
            self._cancel_event = asyncio.Event()
        self._cancel_event.set()

    def _is_cancelled(self) -> bool:
        return self._cancel_event is not None and self._cancel_event.is_set()

    async def _run_sleep(self, seconds: float) -> None:
        if self._interruptible and self._cancel_event is not None:
            await interruptible_sleep(self._cancel_event, seconds)
        else:
            await self._sleep(seconds)

    # === Run ===

    async def run(
        self,
        plan: Plan,
        *,
        auto_teardown: Optional[bool] = None,
        run_id: Optional[str] = None,
    ) -> RunResult:
        """Execute every step in order.

        On a failed or cancelled step the ledger is torn down automatically
        unless ``auto_teardown`` is False. Success never tears down.
        """
        missing = [name for name in plan.driver_names() if name not in self._drivers]
        if missing:
            raise ConfigurationError(
                f"No driver available for: {', '.join(missing)}",
                details={"available": ", ".join(sorted(self._drivers)) or "none"},
            )
        ensure_valid(plan)
        await self._preflight(plan)

        if auto_teardown is None:
            auto_teardown = self._settings.auto_teardown
        run_id = run_id or new_run_id()
        log = bind_context(run_id=run_id, plan=plan.name)

        if self._store is not None:
            self._store.start_run(run_id, plan.name)

        ledger = Ledger(listener=self._store)
        outputs = StepOutputs(order=[step.name for step in plan.steps])
        resolver = ReferenceResolver(
            outputs,
            variables=plan.variables,
            run_id=run_id,
            run_suffix=secrets.token_hex(4),
            plan_name=plan.name,
            environ=self._environ,
        )
        result = RunResult(
            plan_name=plan.name,
            run_id=run_id,
            outcome=RunOutcome.SUCCEEDED,
            ledger=ledger,
        )
        started = self._clock()
        log.info("run_started", steps=len(plan.steps))

        try:
            for index, step in enumerate(plan.steps):
                step_result = await self._execute_step(
                    plan, index, step, ledger, outputs, resolver, result, log
                )
                if step_result.outcome in (StepOutcome.FAILED, StepOutcome.CANCELLED):
                    result.outcome = (
                        RunOutcome.CANCELLED
                        if step_result.outcome == StepOutcome.CANCELLED
                        else RunOutcome.FAILED
                    )
                    result.failed_step = step.name
                    result.error = step_result.error
                    break
        except asyncio.CancelledError:
            result.outcome = RunOutcome.CANCELLED
            result.error = "Run task was cancelled"
            log.warning("run_task_cancelled", created=len(ledger))
            if auto_teardown:
                result.teardown = await self.teardown(ledger)
            raise

        if result.outcome != RunOutcome.SUCCEEDED:
            log.error(
                "run_failed",
                outcome=result.outcome.value,
                failed_step=result.failed_step,
                error=result.error,
                created=[r.label for r in result.created],
            )
            if auto_teardown:
                result.teardown = await self.teardown(ledger)
        else:
            log.info("run_succeeded", created=len(result.created))

        result.duration_seconds = self._clock() - started
        return result

    async def _preflight(self, plan: Plan) -> None:
        for name in plan.driver_names():
            health = await check_health(self._drivers[name])
            if not health.usable:
                raise ConfigurationError(
                    f"Driver '{name}' failed its health check",
                    details={"health": health.details or health.status},
                )
            if health.status == "degraded":
                logger.warning("driver_degraded", driver=name, details=health.details)

    async def _execute_step(
        self,
        plan: Plan,
        index: int,
        step: Step,
        ledger: Ledger,
        outputs: StepOutputs,
        resolver: ReferenceResolver,
        result: RunResult,
        log: Any,
    ) -> StepResult:
        step_result = StepResult(name=step.name, kind=step.kind, outcome=StepOutcome.FAILED)
        result.steps.append(step_result)
        started = self._clock()
        log = log.bind(step=step.name, kind=step.kind, index=index)

        try:
            if self._is_cancelled():
                raise RunCancelled(f"Cancelled before step '{step.name}'")

            if step.when is not None and not is_truthy(resolver.resolve(step.when)):
                outputs.skip(step.name)
                step_result.outcome = StepOutcome.SKIPPED
                log.info("step_skipped")
                return step_result

            params = resolver.resolve(step.params)
            teardown = step.teardown
            if teardown.params:
                teardown = replace(teardown, params=resolver.resolve(teardown.params))
            driver_name = plan.driver_for(step)
            driver = self._drivers[driver_name]

            created, attempts = await call_with_retry(
                lambda: driver.create(step.kind, params),
                wait_seconds=self._settings.create_retry_wait,
                operation=f"create {step.kind}",
                sleep=self._sleep,
            )
            created = normalize_create(created)

            step_result.resource_id = created.id

            # Recorded before anything else can fail, so teardown always sees it
            held = len(ledger)
            try:
                record = ledger.append(
                    kind=step.kind,
                    resource_id=created.id,
                    step=step.name,
                    driver=driver_name,
                    teardown=teardown,
                    attributes=created.attributes,
                )
            finally:
                # The ledger keeps the record even when persisting it failed
                if len(ledger) > held:
                    result.created.append(ledger.records[-1])
            outputs.record(step.name, created.id, step.kind, created.attributes)
            step_result.attempts = attempts
            step_result.outcome = StepOutcome.CREATED
            log.info("step_created", resource_id=created.id, sequence=record.sequence)

            if step.readiness is not None:
                outcome = await wait_for_state(
                    lambda: driver.poll(step.kind, created.id),
                    step.readiness,
                    target=ResourceState.READY,
                    sleep=self._run_sleep,
                    clock=self._clock,
                    cancelled=self._is_cancelled,
                    description=f"{step.kind} {created.id}",
                )
                step_result.polls = outcome.attempts
                step_result.outcome = StepOutcome.READY
                log.info("step_ready", resource_id=created.id, polls=outcome.attempts)

        except RunCancelled as e:
            step_result.outcome = StepOutcome.CANCELLED
            step_result.error = e.message
            log.warning("step_cancelled")
        except StepwiseError as e:
            step_result.outcome = StepOutcome.FAILED
            step_result.error = e.message
            log.error("step_failed", error_type=type(e).__name__, error=e.message, details=e.details)
        except Exception as e:
            step_result.outcome = StepOutcome.FAILED
            step_result.error = f"{type(e).__name__}: {e}"
            log.error("step_failed", error_type=type(e).__name__, error=str(e), exc_info=True)
        finally:
            step_result.duration_seconds = self._clock() - started

        return step_result

    # === Teardown ===

    async def teardown(self, ledger: Ledger) -> List[TeardownResult]:
        """Reverse every outstanding record, newest first.

        A failure on one record is recorded and teardown moves on to the next;
        nothing is raised. Records that were deleted (or already absent) are
        released from the ledger; failed ones stay for manual attention.
        """
        records = ledger.in_teardown_order()
        if not records:
            return []

        logger.info("teardown_started", records=len(records))
        results: List[TeardownResult] = []
        for record in records:
            outcome = await self._teardown_record(record)
            results.append(outcome)
            if outcome.status != TeardownStatus.FAILED:
                try:
                    ledger.release(record)
                except OSError as e:
                    logger.error(
                        "ledger_release_failed",
                        sequence=record.sequence,
                        resource=record.label,
                        error=str(e),
                    )

        failed = [r for r in results if r.status == TeardownStatus.FAILED]
        logger.info(
            "teardown_finished",
            records=len(results),
            failed=len(failed),
            remaining=[r.record.label for r in failed],
        )
        return results

    async def _teardown_record(self, record: ResourceRecord) -> TeardownResult:
        log = logger.bind(sequence=record.sequence, kind=record.kind, resource_id=record.id)

        if record.teardown.retain:
            log.info("teardown_retained")
            return TeardownResult(record, TeardownStatus.SKIPPED, "retained")

        try:
            await self._delete(record)
        except ResourceNotFoundError:
            log.info("teardown_already_absent")
            return TeardownResult(record, TeardownStatus.SKIPPED, "already absent")
        except TeardownError as e:
            log.error("teardown_failed", error=e.message, **e.details)
            return TeardownResult(record, TeardownStatus.FAILED, e.message)

        log.info("teardown_succeeded")
        return TeardownResult(record, TeardownStatus.SUCCEEDED)

    async def _delete(self, record: ResourceRecord) -> None:
        """Delete one record's resource, waiting for it to be gone when asked to.

        Raises ResourceNotFoundError when the resource is already absent and
        TeardownError for anything else.
        """
        driver = self._drivers.get(record.driver)
        if driver is None:
            raise TeardownError(f"driver '{record.driver}' is not available")

        try:
            await call_with_retry(
                lambda: driver.delete(record.kind, record.id, record.teardown.params),
                wait_seconds=self._settings.create_retry_wait,
                operation=f"delete {record.kind}",
                sleep=self._sleep,
            )
        except ResourceNotFoundError:
            raise
        except Exception as e:
            raise TeardownError(_describe(e), details={"stage": "delete"}) from e

        if record.teardown.wait is None:
            return
        try:
            await wait_for_state(
                lambda: driver.poll(record.kind, record.id),
                record.teardown.wait,
                target=ResourceState.DELETED,
                sleep=self._sleep,
                clock=self._clock,
                description=f"{record.kind} {record.id}",
            )
        except Exception as e:
            raise TeardownError(
                f"deletion not confirmed: {_describe(e)}", details={"stage": "wait"}
            ) from e


def _describe(error: Exception) -> str:
    return error.message if isinstance(error, StepwiseError) else f"{type(error).__name__}: {error}"
