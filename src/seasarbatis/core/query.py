"""
Fluent Select / Update / Delete builders.

Manifesto:
    A builder accumulates configuration through chained calls and is
    consumed by exactly one terminal call. Terminal calls never mutate
    the builder further; a builder is not reused after it ran.

Architecture:
    ::

        Select.get_result_list() resolves its statement by priority:

          1. explicit SQL          with_sql("SELECT ...")
          2. SQL file              with_sql_file("users/by_name.sql")
          3. primary-key predicate by_primary_key(1, 2)
          4. criteria              where(SimpleWhere().eq(...))
          5. select all            SELECT * FROM table

        get_single_result()
            find_single() ──> Ok(row) / Err(NotFound) / Err(Ambiguous)
                          └─> resolve_single(result, suppress=...)

        Update.set(...).where(...).execute()  → affected rows
        Delete.where(...).execute()           → affected rows

    Every terminal call runs inside a propagated transaction: REQUIRED by
    default, REQUIRES_NEW when the builder was created with
    ``requires_new=True``.

Examples:
    >>> users = jdbc.from_(User).where(jdbc.where().ge("age", 20)).order_by("name").get_result_list()
    >>> user = jdbc.from_(User).by_primary_key(1).suppress_exception().get_single_result()
    >>> jdbc.update_query(User).set(active=False).where(jdbc.where().lt("age", 18)).execute()

Tags:
    fluent-builder, select, update, delete, seasarbatis
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any, Generic, TypeVar

from seasarbatis.core.entity import EntityMetadata, primary_key_predicate, resolve_metadata
from seasarbatis.core.enums import CommandKind, Propagation
from seasarbatis.core.errors import StatementError
from seasarbatis.core.executor import QueryExecutor
from seasarbatis.core.result import Result, resolve_single, single_row
from seasarbatis.core.sql import (
    BuiltStatement,
    Criteria,
    build_delete_where,
    build_select_all,
    build_select_by_primary_key,
    build_select_where,
    build_update_where,
)

T = TypeVar("T")
R = TypeVar("R")


class _Builder:
    """State shared by the three builders."""

    def __init__(
        self,
        executor: QueryExecutor,
        entity_type: type | None = None,
        *,
        requires_new: bool = False,
    ) -> None:
        self._executor = executor
        self._entity_type = entity_type
        self._propagation = Propagation.of(requires_new)
        self._criteria: Criteria | None = None

    def _metadata(self) -> EntityMetadata:
        if self._entity_type is None:
            raise StatementError(f"{type(self).__name__} has no entity class; call from_() first")
        return resolve_metadata(self._entity_type)

    def _run(self, operation: Callable[[], R]) -> R:
        return self._executor.tx_manager.execute(self._propagation, operation)


class Select(_Builder, Generic[T]):
    """Chainable SELECT builder.

    ``result_type`` decides how rows are mapped: an entity class (set by
    :meth:`from_`), ``dict`` (the default for raw SQL) or any other type
    accepted by :func:`~seasarbatis.core.executor.map_row`.
    """

    def __init__(
        self,
        executor: QueryExecutor,
        result_type: Any = None,
        *,
        requires_new: bool = False,
    ) -> None:
        super().__init__(executor, None, requires_new=requires_new)
        self._result_type = result_type
        self._sql: str | None = None
        self._sql_file: str | Path | None = None
        self._params: dict[str, Any] = {}
        self._pk_values: tuple[Any, ...] | Mapping[str, Any] | None = None
        self._order: list[tuple[str, bool]] = []
        self._suppress = False

    # -- Configuration -----------------------------------------------------

    def from_(self, entity_type: type[T]) -> Select[T]:
        """Target an entity class; rows are mapped onto it."""
        self._entity_type = entity_type
        if self._result_type is None:
            self._result_type = entity_type
        return self

    def with_sql(self, sql: str) -> Select[T]:
        self._sql = sql
        return self

    def with_sql_file(self, sql_file: str | Path) -> Select[T]:
        self._sql_file = sql_file
        return self

    def with_params(self, params: Mapping[str, Any] | None = None, **named: Any) -> Select[T]:
        """Named parameters for explicit SQL or a SQL file."""
        if params:
            self._params.update(params)
        self._params.update(named)
        return self

    def by_primary_key(self, *values: Any, **named: Any) -> Select[T]:
        """Key values, positional in key order or by field/column name."""
        if values and named:
            raise StatementError("Pass primary-key values positionally or by name, not both")
        self._pk_values = named if named else values
        return self

    def where(self, criteria: Criteria) -> Select[T]:
        self._criteria = criteria
        return self

    def order_by(self, column: str, descending: bool = False) -> Select[T]:
        self._order.append((column, descending))
        return self

    def suppress_exception(self, suppress: bool = True) -> Select[T]:
        """Return ``None`` instead of raising when a single result finds no row."""
        self._suppress = suppress
        return self

    # -- Terminal calls ----------------------------------------------------

    def get_result_list(self) -> list[T]:
        return self._run(self._fetch)

    def find_single(self) -> Result[T]:
        """Exactly-one-row lookup as an ``Ok`` / ``Err`` value."""
        rows = self.get_result_list()
        return single_row(rows, table=self._table_name())

    def get_single_result(self) -> T | None:
        """Exactly one row; ``None`` on no row when suppressed."""
        return resolve_single(self.find_single(), suppress=self._suppress)

    # -- Internals ---------------------------------------------------------

    def _table_name(self) -> str | None:
        if self._entity_type is None:
            return None
        return resolve_metadata(self._entity_type).qualified_name

    def _mapped_type(self) -> Any:
        return self._result_type if self._result_type is not None else dict

    def _statement(self) -> BuiltStatement:
        metadata = self._metadata()
        if self._pk_values is not None:
            predicate = primary_key_predicate(metadata, self._pk_values)
            return build_select_by_primary_key(metadata, predicate)
        if self._criteria is not None:
            return build_select_where(metadata, self._criteria, self._order)
        return build_select_all(metadata, self._order)

    def _fetch(self) -> list[Any]:
        executor = self._executor
        if self._sql is not None:
            return executor.execute_select(self._sql, self._params, self._mapped_type())
        if self._sql_file is not None:
            return executor.execute_select_file(self._sql_file, self._params, self._mapped_type())
        sql, params = self._statement()
        return executor.execute_select(sql, params, self._mapped_type())


class Update(_Builder):
    """Criteria-driven UPDATE of many rows."""

    def __init__(self, executor: QueryExecutor, entity_type: type, *, requires_new: bool = False) -> None:
        super().__init__(executor, entity_type, requires_new=requires_new)
        self._values: dict[str, Any] = {}

    def set(self, values: Mapping[str, Any] | None = None, **named: Any) -> Update:
        """New column values, keyed by field or column name."""
        if values:
            self._values.update(values)
        self._values.update(named)
        return self

    def where(self, criteria: Criteria) -> Update:
        self._criteria = criteria
        return self

    def execute(self) -> int:
        """Run the UPDATE and return the affected-row count."""
        if self._criteria is None:
            raise StatementError("Update requires where(...) criteria")
        sql, params = build_update_where(self._metadata(), self._values, self._criteria)
        return self._run(lambda: self._executor.execute(sql, params, CommandKind.UPDATE))


class Delete(_Builder):
    """Criteria-driven DELETE of many rows."""

    def where(self, criteria: Criteria) -> Delete:
        self._criteria = criteria
        return self

    def execute(self) -> int:
        """Run the DELETE and return the affected-row count."""
        if self._criteria is None:
            raise StatementError("Delete requires where(...) criteria")
        sql, params = build_delete_where(self._metadata(), self._criteria)
        return self._run(lambda: self._executor.execute(sql, params, CommandKind.DELETE))


__all__ = [
    "Select",
    "Update",
    "Delete",
]
