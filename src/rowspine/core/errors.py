"""
Structured error types for rowspine.

Every failure raised by the data-access layer carries a category, a retry
hint, structured context (which operation, against which table) and the
chained driver exception. Callers branch on the class; log pipelines
consume ``to_dict()``.

Manifesto:
    - **Typed hierarchy:** connection, query, mapping, transaction and
      cancellation failures are distinct classes
    - **Verbatim causes:** backend errors are wrapped, never reinterpreted;
      the driver exception is always available as ``cause``
    - **Sentinels are not failures:** ``NoMoreRowsError`` marks the end of a
      row-set and deliberately sits outside ``SpineError``

Architecture:
    ::

        SpineError (category, retryable, retry_after, context, cause)
        ├── TransientError
        │   └── DatabaseConnectionError
        │       └── SessionClosedError
        ├── ValidationError
        │   └── MappingError
        ├── ConfigError
        │   └── InvalidConfigError
        ├── DatabaseError
        │   ├── QueryError
        │   │   └── IntegrityError
        │   ├── NotFoundError
        │   └── TransactionError
        │       └── ScopeError
        └── CancelledError
            └── DeadlineExceededError

        NoMoreRowsError (plain Exception, end-of-rows sentinel)

Examples:
    >>> err = QueryError("no such table: bookz").with_context(
    ...     operation="select", target="bookz"
    ... )
    >>> err.to_dict()["context"]
    {'operation': 'select', 'target': 'bookz'}

Tags:
    error-handling, exception-hierarchy, database, rowspine
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    DATABASE = "DATABASE"         # connection pool, statement failures
    VALIDATION = "VALIDATION"     # mapping, type mismatches
    CONFIG = "CONFIG"             # settings, URLs, unknown backends
    CANCELLED = "CANCELLED"       # caller-initiated cancellation
    INTERNAL = "INTERNAL"         # bugs, unexpected state
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Attributes:
        operation: Data-access operation (``select``, ``insert``, ``commit``...)
        target: Table, collection or statement the operation addressed
        backend: Backend name (``sqlite``, ``postgresql``...)
        sql: Compiled statement text, when one was involved
        metadata: Additional key-value pairs
    """

    operation: str | None = None
    target: str | None = None
    backend: str | None = None
    sql: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["operation", "target", "backend", "sql"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class SpineError(Exception):
    """
    Base exception for all rowspine errors.

    Subclasses set ``default_category`` and ``default_retryable``; instances
    may override both. Passing ``cause=`` chains the original exception so
    tracebacks show the driver error underneath.

    Examples:
        >>> error = SpineError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.retryable
        False
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: int | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> SpineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise QueryError("Failed").with_context(operation="update", target="books")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# TRANSIENT ERRORS
# =============================================================================


class TransientError(SpineError):
    """Temporary error that may succeed on retry."""

    default_category = ErrorCategory.DATABASE
    default_retryable = True


class DatabaseConnectionError(TransientError):
    """Opening, pooling or closing a backend connection failed."""


class SessionClosedError(DatabaseConnectionError):
    """The session was closed; its pool no longer hands out connections."""

    default_retryable = False

    def __init__(self, message: str = "session is closed", **kwargs: Any):
        super().__init__(message, **kwargs)


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(SpineError):
    """
    Data validation error.

    Never retryable - the data or the record declaration must be fixed.
    """

    default_category = ErrorCategory.VALIDATION
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        constraint: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value
        self.constraint = constraint

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        if self.constraint:
            result["constraint"] = self.constraint
        return result


class MappingError(ValidationError):
    """A record could not be encoded into, or decoded from, a row.

    Raised for column/type mismatches, NULL in a non-nullable field,
    missing required columns, ambiguous join columns and record types
    without mapping metadata.
    """


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(SpineError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class InvalidConfigError(ConfigError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}")


# =============================================================================
# DATABASE ERRORS
# =============================================================================


class DatabaseError(SpineError):
    """Database query or transaction error."""

    default_category = ErrorCategory.DATABASE
    default_retryable = False


class QueryError(DatabaseError):
    """A statement failed in the backend, or could not be built."""


class IntegrityError(QueryError):
    """Database integrity constraint violation."""


class NotFoundError(DatabaseError):
    """A single-row fetch produced zero rows."""

    def __init__(self, message: str = "no rows matched the query", **kwargs: Any):
        super().__init__(message, **kwargs)


class TransactionError(DatabaseError):
    """Begin, commit or rollback failed, or the scope already finished."""


class ScopeError(TransactionError):
    """A handle from one session/transaction scope was used in another."""


# =============================================================================
# CANCELLATION
# =============================================================================


class CancelledError(SpineError):
    """The caller cancelled the operation through its Context."""

    default_category = ErrorCategory.CANCELLED
    default_retryable = False

    def __init__(self, message: str = "operation cancelled", **kwargs: Any):
        super().__init__(message, **kwargs)


class DeadlineExceededError(CancelledError):
    """The Context deadline passed before the operation finished."""

    def __init__(self, message: str = "deadline exceeded", **kwargs: Any):
        super().__init__(message, **kwargs)


# =============================================================================
# SENTINELS
# =============================================================================


class NoMoreRowsError(Exception):
    """End-of-rows sentinel. Not a failure; raised by ``Cursor.scan()``."""

    def __init__(self, message: str = "no more rows in this result set"):
        super().__init__(message)


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def attach_rollback_error(error: BaseException, rollback_error: BaseException) -> None:
    """Record a failed rollback on the error that triggered it.

    The original error keeps propagating; the rollback failure rides along
    as ``rollback_error`` and as an exception note.
    """
    error.rollback_error = rollback_error  # type: ignore[attr-defined]
    error.add_note(f"rollback failed: {rollback_error!r}")


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "SpineError",
    "TransientError",
    "DatabaseConnectionError",
    "SessionClosedError",
    "ValidationError",
    "MappingError",
    "ConfigError",
    "InvalidConfigError",
    "DatabaseError",
    "QueryError",
    "IntegrityError",
    "NotFoundError",
    "TransactionError",
    "ScopeError",
    "CancelledError",
    "DeadlineExceededError",
    "NoMoreRowsError",
    "attach_rollback_error",
]
