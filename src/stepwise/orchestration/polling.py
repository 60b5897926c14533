"""Bounded polling for resource state transitions."""

from __future__ import annotations

import asyncio
import contextlib
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import structlog

from stepwise.core.errors import (
    ReadinessTimeout,
    ResourceFailedError,
    ResourceNotFoundError,
    RunCancelled,
    TransientError,
)
from stepwise.drivers.base import PollResult, ResourceState, normalize_poll
from stepwise.plans.models import ReadinessPolicy

logger = structlog.get_logger()

SleepFn = Callable[[float], Awaitable[Any]]
ClockFn = Callable[[], float]
PollFn = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class PollOutcome:
    """How a wait ended successfully."""

    attempts: int
    elapsed: float
    last: PollResult


async def interruptible_sleep(event: asyncio.Event, seconds: float) -> None:
    """Sleep up to ``seconds``, returning early once ``event`` is set."""
    if seconds <= 0:
        return
    with contextlib.suppress(asyncio.TimeoutError):
        await asyncio.wait_for(event.wait(), timeout=seconds)


def _matches(result: PollResult, target: ResourceState, policy: ReadinessPolicy) -> bool:
    if result.state != target:
        return False
    if target == ResourceState.READY and policy.status is not None:
        return (result.status or "").lower() == policy.status.lower()
    return True


async def wait_for_state(
    poll: PollFn,
    policy: ReadinessPolicy,
    *,
    target: ResourceState = ResourceState.READY,
    sleep: SleepFn = asyncio.sleep,
    clock: ClockFn = time.monotonic,
    cancelled: Callable[[], bool] = lambda: False,
    description: str = "resource",
) -> PollOutcome:
    """Poll until ``target`` holds, the resource fails, or the policy runs out.

    The deadline is ``policy.timeout`` after the first poll; the sleep before
    each poll is capped by the time remaining, so the wait always ends within
    the timeout plus one poll call.

    Raises:
        ReadinessTimeout: deadline or ``max_attempts`` reached
        ResourceFailedError: the driver reported a terminal failure
        RunCancelled: ``cancelled()`` became true
        DriverError: any non-transient driver failure while polling
    """
    start = clock()
    deadline = start + policy.timeout
    attempts = 0

    while True:
        if cancelled():
            raise RunCancelled(f"Cancelled while waiting for {description}")

        result: Optional[PollResult]
        try:
            result = normalize_poll(await poll())
        except ResourceNotFoundError:
            if target != ResourceState.DELETED:
                raise
            result = PollResult(state=ResourceState.DELETED, status="not found")
        except TransientError as e:
            logger.warning("readiness_poll_transient", resource=description, error=str(e))
            result = None
        attempts += 1

        if cancelled():
            raise RunCancelled(f"Cancelled while waiting for {description}")

        if result is not None:
            logger.debug(
                "readiness_poll",
                resource=description,
                attempt=attempts,
                state=result.state.value,
                status=result.status,
            )
            if _matches(result, target, policy):
                return PollOutcome(attempts=attempts, elapsed=clock() - start, last=result)
            if result.state == ResourceState.FAILED:
                raise ResourceFailedError(
                    f"{description} entered a failed state",
                    details={"status": result.status, "detail": result.detail},
                )
            if target == ResourceState.READY and result.state == ResourceState.DELETED:
                raise ResourceFailedError(f"{description} disappeared while waiting to become ready")

        now = clock()
        out_of_attempts = policy.max_attempts is not None and attempts >= policy.max_attempts
        # A NaN deadline also ends the wait
        if not now < deadline or out_of_attempts:
            raise ReadinessTimeout(
                f"{description} did not become {target.value} within {policy.timeout:g}s",
                timeout=policy.timeout,
                attempts=attempts,
            )

        await sleep(min(policy.delay(attempts - 1), deadline - now))
