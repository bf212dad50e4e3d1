"""
Structured error types for jobdeck.

Every failure that crosses a component boundary is a :class:`JobdeckError`
carrying a :class:`ErrorCategory`.  The API error translator maps categories
to HTTP status codes, so components raise typed errors and never build
responses themselves.

Manifesto:
    - **Typed hierarchy:** one subclass per failure domain
    - **Category drives mapping:** AUTH → 401, VALIDATION → 400, rest → 500
    - **Error chaining:** the original exception survives as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                       JobdeckError                               │
        │                    (category, cause)                             │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  AuthError           ValidationError      ConfigError            │
        │  (AUTH)              (VALIDATION)         (CONFIG)               │
        │       │                                        │                 │
        │  AuthenticationError                     MissingConfigError      │
        │  AuthorizationError                                              │
        │                                                                  │
        │  EngineError                     StartupError                    │
        │  (ENGINE)                        (STARTUP)                       │
        │       │                                                          │
        │  SchedulerNotInitializedError    OperationCancelledError         │
        │  SchedulerStateError             (CANCELLED)                     │
        │  JobNotFoundError                                                │
        │  TriggerNotFoundError                                            │
        │  JobAlreadyExistsError                                           │
        └─────────────────────────────────────────────────────────────────┘

Usage:
    from jobdeck.core.errors import JobNotFoundError

    if key not in jobs:
        raise JobNotFoundError(str(key))

Tags:
    error-handling, exception-hierarchy, error-context, jobdeck

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories used for classification and HTTP mapping."""

    AUTH = "AUTH"
    VALIDATION = "VALIDATION"
    CONFIG = "CONFIG"
    ENGINE = "ENGINE"
    STARTUP = "STARTUP"
    CANCELLED = "CANCELLED"
    INTERNAL = "INTERNAL"


class JobdeckError(Exception):
    """
    Base exception for all jobdeck errors.

    Subclasses set ``default_category``; callers may override it per
    instance.  When ``cause`` is given it is also attached as
    ``__cause__`` so tracebacks show the full chain.

    Examples:
        >>> error = JobdeckError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>

        >>> try:
        ...     raise ConnectionError("engine unreachable")
        ... except ConnectionError as e:
        ...     error = EngineError("Scheduler unavailable", cause=e)
        >>> error.cause
        ConnectionError('engine unreachable')
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# AUTH ERRORS
# =============================================================================


class AuthError(JobdeckError):
    """Authentication/authorization error. Never retryable."""

    default_category = ErrorCategory.AUTH


class AuthenticationError(AuthError):
    """Missing, malformed, expired or wrongly signed credentials."""


class AuthorizationError(AuthError):
    """Authenticated principal lacks the required role."""


# =============================================================================
# VALIDATION / CONFIG ERRORS
# =============================================================================


class ValidationError(JobdeckError):
    """Malformed input: bad key strings, cron expressions, trigger definitions."""

    default_category = ErrorCategory.VALIDATION

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message, cause=cause)
        self.field = field
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = str(self.value)
        return result


class ConfigError(JobdeckError):
    """Configuration error."""

    default_category = ErrorCategory.CONFIG


class MissingConfigError(ConfigError):
    """Required configuration value is missing."""

    def __init__(self, key: str, message: str | None = None):
        super().__init__(message or f"Missing required configuration: {key}")
        self.key = key


# =============================================================================
# ENGINE ERRORS
# =============================================================================


class EngineError(JobdeckError):
    """The scheduling engine rejected an operation."""

    default_category = ErrorCategory.ENGINE


class SchedulerNotInitializedError(EngineError):
    """An operation needed the engine before initialization succeeded."""

    def __init__(self, message: str = "Scheduler has not been initialized"):
        super().__init__(message)


class SchedulerStateError(EngineError):
    """The requested transition is not possible from the current state."""


class JobNotFoundError(EngineError):
    """No job is stored under the given key."""

    def __init__(self, key: str):
        super().__init__(f"Job not found: {key}")
        self.key = key


class TriggerNotFoundError(EngineError):
    """No trigger is stored under the given key."""

    def __init__(self, key: str):
        super().__init__(f"Trigger not found: {key}")
        self.key = key


class JobAlreadyExistsError(EngineError):
    """A job or trigger with the same key is already scheduled."""

    def __init__(self, key: str):
        super().__init__(f"Already scheduled: {key}")
        self.key = key


# =============================================================================
# LIFECYCLE ERRORS
# =============================================================================


class StartupError(JobdeckError):
    """Scheduler initialization failed after all retry attempts. Fatal."""

    default_category = ErrorCategory.STARTUP


class OperationCancelledError(JobdeckError):
    """A cancellable lifecycle operation was cancelled by its caller."""

    default_category = ErrorCategory.CANCELLED


def categorize_error(error: BaseException) -> ErrorCategory:
    """Return the category of *error*, INTERNAL for foreign exceptions."""
    if isinstance(error, JobdeckError):
        return error.category
    return ErrorCategory.INTERNAL
