"""
Structured error types for resguard.

Every guard in resguard rejects work by raising one of the errors below.
The hierarchy is small on purpose: callers mostly need to tell an
*invalid argument* (the request would exceed a limit, or is malformed)
apart from an *I/O failure* that happened while handing a resource back.

Manifesto:
    - **Typed rejections:** An admission check that fails raises
      ``InvalidArgumentError`` (also a ``ValueError``), never a bare
      ``Exception``.
    - **I/O failures propagate:** A failed flush raises ``FlushError``
      (also an ``OSError``) even though the resource is still released.
    - **Rich context:** Errors carry the limit, the observed value and the
      operation name so they can be logged without string parsing.
    - **Error chaining:** The underlying exception is kept as ``cause``.

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                         GuardError                            │
        │              (category, context, cause)                       │
        ├──────────────────────────────────────────────────────────────┤
        │                                                               │
        │  InvalidArgumentError (ValueError)   ResourceIOError (OSError)│
        │        │                                   │                  │
        │  OverflowLimitError                   FlushError              │
        │  LimitExceededError                   ReleaseError            │
        │    ├── BudgetExhaustedError                                   │
        │    ├── ExpansionLimitError          DeadlineExceededError     │
        │    ├── DimensionLimitError          (TimeoutError)            │
        │    └── DepthLimitError                                        │
        │  UnsafePatternError                                           │
        │  UnsafeDeserializationError                                   │
        └──────────────────────────────────────────────────────────────┘

Examples:
    >>> error = LimitExceededError("quota exceeded", limit=10, observed=12)
    >>> error.context.limit
    10
    >>> isinstance(error, ValueError)
    True

    >>> try:
    ...     raise OSError("disk full")
    ... except OSError as e:
    ...     err = FlushError("flush failed", cause=e)
    >>> err.category
    <ErrorCategory.IO: 'IO'>

Guardrails:
    ❌ DON'T: Swallow a flush failure because the close succeeded
    ✅ DO: Raise FlushError with cause= and still release the resource

    ❌ DON'T: Report a rejected admission as a generic RuntimeError
    ✅ DO: Raise InvalidArgumentError (or a subclass) with limit/observed

Tags:
    error-handling, exception-hierarchy, error-context, resguard

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Standard error categories for classification and routing.

    - **INVALID_ARGUMENT:** a request was rejected before it was applied
    - **LIMIT:** a configured bound (size, depth, ratio, count) was hit
    - **UNSAFE_INPUT:** input was refused because of its shape, not its size
    - **IO:** a resource operation (flush, close) failed
    - **TIMEOUT:** a deadline passed
    - **INTERNAL / UNKNOWN:** everything else

    Examples:
        >>> ErrorCategory.LIMIT.value
        'LIMIT'
    """

    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    LIMIT = "LIMIT"
    UNSAFE_INPUT = "UNSAFE_INPUT"
    IO = "IO"
    TIMEOUT = "TIMEOUT"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to a guard error.

    Only non-None fields are serialized by ``to_dict()``; free-form values
    go into ``metadata``.

    Examples:
        >>> ctx = ErrorContext(operation="decompress", limit=1024, observed=4096)
        >>> ctx.to_dict()
        {'operation': 'decompress', 'limit': 1024, 'observed': 4096}
    """

    operation: str | None = None
    resource: str | None = None
    limit: Any = None
    observed: Any = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, excluding None values."""
        result = {
            k: v
            for k, v in {
                "operation": self.operation,
                "resource": self.resource,
                "limit": self.limit,
                "observed": self.observed,
            }.items()
            if v is not None
        }
        result.update(self.metadata)
        return result


class GuardError(Exception):
    """
    Base exception for all resguard errors.

    Subclasses set ``default_category``; everything else is per instance.
    ``limit``/``observed``/``operation`` keyword arguments are shortcuts
    that land in ``context``.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
        operation: str | None = None,
        limit: Any = None,
        observed: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if operation is not None:
            self.context.operation = operation
        if limit is not None:
            self.context.limit = limit
        if observed is not None:
            self.context.observed = observed

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> GuardError:
        """
        Add context to this error (fluent API).

        Usage:
            raise LimitExceededError("too big").with_context(resource="upload.zip")
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# INVALID ARGUMENT
# =============================================================================


class InvalidArgumentError(GuardError, ValueError):
    """
    A request was rejected before it was applied.

    Raised by admission checks when the increment is negative or would
    take the running total past its ceiling.  Also a ``ValueError`` so
    callers that only know the builtin taxonomy still catch it.
    """

    default_category = ErrorCategory.INVALID_ARGUMENT


class OverflowLimitError(InvalidArgumentError):
    """A fixed-width computation would wrap around."""


class LimitExceededError(InvalidArgumentError):
    """A configured bound (count, size, total) would be exceeded."""

    default_category = ErrorCategory.LIMIT


class BudgetExhaustedError(LimitExceededError):
    """An iteration or cost budget ran out."""


class ExpansionLimitError(LimitExceededError):
    """Decompression or entity expansion produced too much output."""


class DimensionLimitError(LimitExceededError):
    """Declared dimensions (width, height, pixels) are too large."""


class DepthLimitError(LimitExceededError):
    """Nesting depth of a parsed document is too large."""


class UnsafePatternError(InvalidArgumentError):
    """A regular expression has a shape prone to catastrophic backtracking."""

    default_category = ErrorCategory.UNSAFE_INPUT


class UnsafeDeserializationError(InvalidArgumentError):
    """Serialized input asked for something outside the allow-list."""

    default_category = ErrorCategory.UNSAFE_INPUT


# =============================================================================
# I/O
# =============================================================================


class ResourceIOError(GuardError, OSError):
    """I/O failure while using or releasing a scoped resource."""

    default_category = ErrorCategory.IO


class FlushError(ResourceIOError):
    """
    Buffered output could not be flushed.

    Raised on the success path of a scoped writer; the resource has
    already been released by the time the caller sees this.
    """


class ReleaseError(ResourceIOError):
    """Releasing (closing, unlocking) a resource failed."""


# =============================================================================
# TIMEOUT
# =============================================================================


class DeadlineExceededError(GuardError, TimeoutError):
    """A wall-clock budget for a loop or parse ran out."""

    default_category = ErrorCategory.TIMEOUT


def categorize_error(error: BaseException) -> ErrorCategory:
    """Categorize any exception, including ones resguard did not raise."""
    if isinstance(error, GuardError):
        return error.category
    if isinstance(error, TimeoutError):
        return ErrorCategory.TIMEOUT
    if isinstance(error, (OverflowError, MemoryError, RecursionError)):
        return ErrorCategory.LIMIT
    if isinstance(error, (ValueError, TypeError)):
        return ErrorCategory.INVALID_ARGUMENT
    if isinstance(error, OSError):
        return ErrorCategory.IO
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "GuardError",
    "InvalidArgumentError",
    "OverflowLimitError",
    "LimitExceededError",
    "BudgetExhaustedError",
    "ExpansionLimitError",
    "DimensionLimitError",
    "DepthLimitError",
    "UnsafePatternError",
    "UnsafeDeserializationError",
    "ResourceIOError",
    "FlushError",
    "ReleaseError",
    "DeadlineExceededError",
    "categorize_error",
]
