"""
Unified error handling for Stepwise.

This module provides the error taxonomy shared by drivers, the
orchestrator and the CLI, plus standardized exit codes.

Exit Codes:
- 0: Success
- 1: Plan failed (automatic teardown completed)
- 2: Needs attention (one or more resources could not be torn down)
- 10: Configuration error
- 11: Driver error (external service failure)
- 12: Validation error
- 130: Cancelled by user
- 127: Unknown/internal error
"""

from __future__ import annotations

import functools
import sys
import traceback
from enum import IntEnum
from typing import Any, Callable, TypeVar

import structlog

logger = structlog.get_logger()


class ExitCode(IntEnum):
    """Standardized exit codes for CLI commands."""

    SUCCESS = 0
    PLAN_FAILED = 1
    NEEDS_ATTENTION = 2
    CONFIG_ERROR = 10
    DRIVER_ERROR = 11
    VALIDATION_ERROR = 12
    UNKNOWN_ERROR = 127
    CANCELLED = 130


class StepwiseError(Exception):
    """Base exception for Stepwise errors with exit code support."""

    exit_code: ExitCode = ExitCode.UNKNOWN_ERROR
    show_traceback: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(StepwiseError):
    """Raised for configuration-related errors (unknown driver, bad config file)."""

    exit_code = ExitCode.CONFIG_ERROR


class ValidationError(StepwiseError):
    """Raised for bad parameters. Never retried."""

    exit_code = ExitCode.VALIDATION_ERROR


class PlanValidationError(ValidationError):
    """Raised when a plan fails validation before execution starts."""

    def __init__(self, message: str, problems: list[str] | None = None):
        super().__init__(message, details={"problems": problems or []})
        self.problems = problems or []


class DriverError(StepwiseError):
    """Raised when a resource driver (external service) fails."""

    exit_code = ExitCode.DRIVER_ERROR


class TransientError(DriverError):
    """Network, throttling or 5xx-style failure that may succeed on retry."""


class ResourceNotFoundError(DriverError):
    """The resource is already absent."""


class ReadinessTimeout(StepwiseError):
    """A resource never reached the expected state in time."""

    exit_code = ExitCode.PLAN_FAILED

    def __init__(self, message: str, *, timeout: float, attempts: int):
        super().__init__(message, details={"timeout": timeout, "attempts": attempts})
        self.timeout = timeout
        self.attempts = attempts


class ResourceFailedError(StepwiseError):
    """The driver reported a terminal failure state for a resource."""

    exit_code = ExitCode.PLAN_FAILED


class RunCancelled(StepwiseError):
    """Raised internally when the cancel signal is observed."""

    exit_code = ExitCode.CANCELLED


class TeardownError(StepwiseError):
    """A delete failed during teardown. Collected, never propagated."""

    exit_code = ExitCode.NEEDS_ATTENTION


# Type variable for decorated functions
F = TypeVar("F", bound=Callable[..., int])


def main_with_error_handling(
    *,
    show_traceback: bool = False,
    log_errors: bool = True,
) -> Callable[[F], F]:
    """
    Decorator for CLI command functions that provides unified error handling.

    Catches exceptions and converts them to appropriate exit codes with
    consistent error reporting.

    Args:
        show_traceback: If True, show full traceback for unexpected errors
        log_errors: If True, log errors to structlog

    Exit codes:
        - StepwiseError subclasses: Uses the error's exit_code
        - KeyboardInterrupt: Returns 130 (standard for SIGINT)
        - Other exceptions: Returns 127 (unknown error)
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> int:
            try:
                return func(*args, **kwargs)
            except StepwiseError as e:
                if log_errors:
                    logger.error(
                        "command_error",
                        error_type=type(e).__name__,
                        message=e.message,
                        exit_code=int(e.exit_code),
                        **e.details,
                    )
                _print_error(e)
                if e.show_traceback or show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return e.exit_code
            except KeyboardInterrupt:
                if log_errors:
                    logger.info("command_interrupted")
                return ExitCode.CANCELLED
            except Exception as e:
                if log_errors:
                    logger.error(
                        "unexpected_error",
                        error_type=type(e).__name__,
                        message=str(e),
                        exit_code=int(ExitCode.UNKNOWN_ERROR),
                    )
                if show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return ExitCode.UNKNOWN_ERROR

        return wrapper  # type: ignore[return-value]

    return decorator


def format_error_message(error: StepwiseError) -> str:
    """Format an error message for display to users."""
    msg = error.message
    details = {k: v for k, v in error.details.items() if k != "problems"}
    if details:
        detail_str = ", ".join(f"{k}={v}" for k, v in details.items())
        msg = f"{msg} ({detail_str})"
    problems = getattr(error, "problems", None)
    if problems:
        msg = msg + "".join(f"\n  - {p}" for p in problems)
    return msg


def _print_error(error: StepwiseError) -> None:
    from stepwise.cli.ux import error as print_error

    print_error(format_error_message(error))
