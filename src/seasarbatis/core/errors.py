"""
Structured error types for seasarbatis.

Every failure surfaced by the mapping layer is a :class:`BatisError`
carrying a category, an explicit retry flag, structured context (table,
entity, command kind, SQL) and the chained lower-level cause.

Manifesto:
    - **Typed hierarchy:** callers pattern-match on the failure they care
      about (``OptimisticLockError``, ``NotFoundError``) instead of
      parsing messages
    - **Explicit retry semantics:** an optimistic-lock conflict is
      retryable, a malformed entity never is
    - **Wrapped once:** driver errors are wrapped by the executor into
      ``ExecutionError``; the transaction manager passes any
      ``BatisError`` through untouched

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                         BatisError                            │
        │        (category, retryable, context, cause)                  │
        ├──────────────────────────────────────────────────────────────┤
        │  MetadataError        StatementError      ConfigError         │
        │  (METADATA)           (STATEMENT)         (CONFIG)            │
        │                                                               │
        │  NoPrimaryKeyError    NotFoundError       AmbiguousResultError│
        │  (STATEMENT)          (QUERY)             (QUERY)             │
        │                                                               │
        │  OptimisticLockError  ExecutionError      TransactionError    │
        │  (CONCURRENCY,retry)  (EXECUTION)         (TRANSACTION)       │
        │                                                               │
        │  SqlFileError                                                 │
        │  (CONFIG)                                                     │
        └──────────────────────────────────────────────────────────────┘

Examples:
    >>> error = NotFoundError("no row", table="users")
    >>> error.context.table
    'users'
    >>> OptimisticLockError("lost update", entity=None, checked_columns=["id"]).retryable
    True

Guardrails:
    ❌ DON'T: Wrap a BatisError in another BatisError
    ✅ DO: Let domain errors propagate so callers can match on them

    ❌ DON'T: Swallow the original driver exception
    ✅ DO: Pass it as cause= so tracebacks keep the root failure

Tags:
    error-handling, exception-hierarchy, optimistic-lock, seasarbatis
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from seasarbatis.core.enums import CommandKind


class ErrorCategory(str, Enum):
    """Standard error categories for classification and logging."""

    METADATA = "METADATA"            # Entity declarations
    STATEMENT = "STATEMENT"          # SQL generation
    QUERY = "QUERY"                  # Result cardinality
    CONCURRENCY = "CONCURRENCY"      # Optimistic lock conflicts
    EXECUTION = "EXECUTION"          # Driver / database failures
    TRANSACTION = "TRANSACTION"      # Propagation failures
    CONFIG = "CONFIG"                # Settings, SQL files
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only non-None fields are emitted by :meth:`to_dict`, so the context
    stays compact in log lines.
    """

    table: str | None = None
    entity_type: str | None = None
    command_kind: str | None = None
    sql: str | None = None
    sql_file: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["table", "entity_type", "command_kind", "sql", "sql_file"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class BatisError(Exception):
    """
    Base exception for all seasarbatis errors.

    Subclasses set ``default_category`` and ``default_retryable``; any
    keyword understood by :class:`ErrorContext` (``table``, ``sql``, …)
    can be passed straight to the constructor.

    Examples:
        >>> try:
        ...     raise OSError("socket closed")
        ... except OSError as e:
        ...     error = BatisError("driver failure", cause=e)
        >>> error.cause
        OSError('socket closed')
        >>> BatisError("boom").with_context(table="users").to_dict()["context"]
        {'table': 'users'}
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
        **context_fields: Any,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if context_fields:
            self.with_context(**context_fields)

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> BatisError:
        """
        Add context to this error (fluent API).

        Usage:
            raise ExecutionError("insert failed").with_context(table="users")
        """
        for key, value in kwargs.items():
            if isinstance(value, CommandKind):
                value = value.value
            if hasattr(self.context, key) and key != "metadata":
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
            "retryable": self.retryable,
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
# METADATA / STATEMENT ERRORS (never retryable)
# =============================================================================


class MetadataError(BatisError):
    """Entity type is malformed or declares no primary key."""

    default_category = ErrorCategory.METADATA


class StatementError(BatisError):
    """A statement cannot be built from the supplied values."""

    default_category = ErrorCategory.STATEMENT


class NoPrimaryKeyError(StatementError):
    """Update or delete attempted without primary-key values."""

    pass


# =============================================================================
# QUERY ERRORS
# =============================================================================


class NotFoundError(BatisError):
    """A single-result query matched no row."""

    default_category = ErrorCategory.QUERY


class AmbiguousResultError(BatisError):
    """A single-result query matched more than one row."""

    default_category = ErrorCategory.QUERY

    def __init__(self, message: str, *, row_count: int | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.row_count = row_count


class OptimisticLockError(BatisError):
    """
    An UPDATE by primary key affected zero rows.

    Either the row vanished or a concurrent writer changed it first. The
    entity that failed to update and the key columns that were checked are
    kept so the caller can reload and merge.
    """

    default_category = ErrorCategory.CONCURRENCY
    default_retryable = True

    def __init__(
        self,
        message: str,
        *,
        entity: Any,
        checked_columns: list[str] | tuple[str, ...],
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.entity = entity
        self.checked_columns = tuple(checked_columns)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["checked_columns"] = list(self.checked_columns)
        return result


# =============================================================================
# EXECUTION / TRANSACTION ERRORS
# =============================================================================


class ExecutionError(BatisError):
    """Lower-level failure raised by the statement-execution boundary."""

    default_category = ErrorCategory.EXECUTION

    def __init__(
        self,
        message: str,
        *,
        command_kind: CommandKind | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.command_kind = command_kind
        if command_kind is not None:
            self.with_context(command_kind=command_kind)


class TransactionError(BatisError):
    """Unexpected failure inside a propagated unit of work."""

    default_category = ErrorCategory.TRANSACTION


# =============================================================================
# CONFIG ERRORS
# =============================================================================


class ConfigError(BatisError):
    """Invalid or missing configuration."""

    default_category = ErrorCategory.CONFIG


class SqlFileError(ConfigError):
    """SQL file cannot be located or read."""

    pass


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, BatisError):
        return error.retryable
    return isinstance(error, ConnectionError)


def is_domain_error(error: BaseException) -> bool:
    """True for errors the transaction manager must propagate unwrapped."""
    return isinstance(error, BatisError)


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "BatisError",
    "MetadataError",
    "StatementError",
    "NoPrimaryKeyError",
    "NotFoundError",
    "AmbiguousResultError",
    "OptimisticLockError",
    "ExecutionError",
    "TransactionError",
    "ConfigError",
    "SqlFileError",
    "is_retryable",
    "is_domain_error",
]
