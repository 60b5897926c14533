"""Retry policy for driver create/delete calls.

Transient failures (timeouts, throttling, 5xx) are retried exactly once;
validation and other driver errors are never retried.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, Tuple, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from stepwise.core.errors import TransientError

logger = structlog.get_logger()

T = TypeVar("T")

MAX_ATTEMPTS = 2


def _log_retry(operation: str) -> Callable[[RetryCallState], None]:
    def before_sleep(state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        logger.warning(
            "driver_call_retrying",
            operation=operation,
            attempt=state.attempt_number,
            error=str(exc),
        )

    return before_sleep


def retrying(
    wait_seconds: float,
    *,
    operation: str = "driver call",
    sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
) -> AsyncRetrying:
    kwargs: dict[str, Any] = {
        "retry": retry_if_exception_type(TransientError),
        "stop": stop_after_attempt(MAX_ATTEMPTS),
        "wait": wait_exponential(multiplier=wait_seconds, min=wait_seconds, max=wait_seconds * 8),
        "reraise": True,
        "before_sleep": _log_retry(operation),
    }
    if sleep is not None:
        kwargs["sleep"] = sleep
    return AsyncRetrying(**kwargs)


async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    wait_seconds: float,
    operation: str = "driver call",
    sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
) -> Tuple[T, int]:
    """Await ``fn()``, retrying once on TransientError. Returns (result, attempts)."""
    attempts = 0
    async for attempt in retrying(wait_seconds, operation=operation, sleep=sleep):
        with attempt:
            attempts = attempt.retry_state.attempt_number
            result = await fn()
    return result, attempts
