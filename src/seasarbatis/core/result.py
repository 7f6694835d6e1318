"""
Result envelope for single-row lookups.

A single-result query has three outcomes: exactly one row, no row, or
more than one row. Instead of using exceptions for control flow, the
lookup produces ``Ok(row)`` or ``Err(error)``; the suppression flag of
the caller then decides whether a not-found ``Err`` becomes ``None`` or
is raised. An ambiguous result is always raised.

Architecture:
    ::

        rows ──> single_row(rows) ──┬── Ok(row)
                                    ├── Err(NotFoundError)
                                    └── Err(AmbiguousResultError)

        resolve_single(result, suppress)
            Ok(row)                    → row
            Err(NotFoundError)         → None if suppress else raise
            Err(AmbiguousResultError)  → raise (always)

Examples:
    >>> single_row([{"id": 1}]).unwrap()
    {'id': 1}
    >>> resolve_single(single_row([]), suppress=True) is None
    True
    >>> match single_row([1, 2]):
    ...     case Err(AmbiguousResultError()):
    ...         print("ambiguous")
    ambiguous

Tags:
    result-pattern, not-found, suppression, seasarbatis
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from seasarbatis.core.errors import AmbiguousResultError, BatisError, NotFoundError

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful outcome carrying a value."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        """Get the value. Safe for Ok."""
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def map(self, f: Callable[[T], U]) -> Result[U]:
        """Transform the value if Ok."""
        return Ok(f(self.value))

    def to_dict(self) -> dict[str, Any]:
        return {"ok": True, "value": self.value}

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[T]):
    """Failed outcome carrying the exception that describes it."""

    error: Exception

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> T:
        """Raise the error. Use only when you're sure it's Ok."""
        raise self.error

    def unwrap_or(self, default: T) -> T:
        return default

    def map(self, f: Callable[[T], U]) -> Result[U]:
        """No-op for Err."""
        return Err(self.error)

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.error, BatisError):
            return {"ok": False, "error": self.error.to_dict()}
        return {
            "ok": False,
            "error": {
                "error_type": type(self.error).__name__,
                "message": str(self.error),
            },
        }

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Result = Ok[T] | Err[T]


def single_row(rows: Sequence[T], *, table: str | None = None) -> Result[T]:
    """Classify a row sequence as exactly-one, none, or ambiguous."""
    if not rows:
        return Err(NotFoundError("Query returned no rows", table=table))
    if len(rows) > 1:
        return Err(
            AmbiguousResultError(
                f"Query returned {len(rows)} rows where one was expected",
                row_count=len(rows),
                table=table,
            )
        )
    return Ok(rows[0])


def resolve_single(result: Result[T], *, suppress: bool = False) -> T | None:
    """Unwrap a single-row result, applying the suppression flag."""
    match result:
        case Ok(value):
            return value
        case Err(NotFoundError()) if suppress:
            return None
        case Err(error):
            raise error
    raise TypeError(f"Not a Result: {result!r}")


__all__ = [
    "Ok",
    "Err",
    "Result",
    "single_row",
    "resolve_single",
]
