"""Core modules for Stepwise - centralized definitions and utilities."""

from stepwise.core.errors import (
    ConfigurationError,
    DriverError,
    ExitCode,
    PlanValidationError,
    ReadinessTimeout,
    ResourceFailedError,
    ResourceNotFoundError,
    RunCancelled,
    StepwiseError,
    TeardownError,
    TransientError,
    ValidationError,
    format_error_message,
    main_with_error_handling,
)

__all__ = [
    "ExitCode",
    "StepwiseError",
    "ConfigurationError",
    "ValidationError",
    "PlanValidationError",
    "DriverError",
    "TransientError",
    "ResourceNotFoundError",
    "ReadinessTimeout",
    "ResourceFailedError",
    "RunCancelled",
    "TeardownError",
    "main_with_error_handling",
    "format_error_message",
]
