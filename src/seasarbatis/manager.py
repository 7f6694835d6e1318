"""Caller-facing facade wiring metadata, SQL generation, execution and transactions.

Provides :class:`JdbcManager`, the single entry point most code needs:

Architecture::

    ┌────────────────────────────────────────────────────────────────────┐
    │                          JdbcManager                               │
    │                                                                    │
    │   tx_manager: TransactionManager   ← REQUIRED / REQUIRES_NEW       │
    │   executor:   QueryExecutor        ← SQLAlchemy text() boundary    │
    │   sql_files:  SqlFileLoader        ← two-way SQL files             │
    │                                                                    │
    │   insert / update / delete / insert_or_update     (entities)       │
    │   find_by_pk / find_by_pk_no_exception / find_all                  │
    │   select_by_sql / insert_by_sql / update_by_sql / delete_by_sql    │
    │   select / from_ / update_query / delete_query    (builders)       │
    │   transaction(callback, requires_new=False)                        │
    └────────────────────────────────────────────────────────────────────┘

Every operation runs inside a propagated transaction: it joins the unit
of work already active on the call chain, or owns a new one. Passing
``requires_new=True`` runs the operation in its own independent
transaction that commits or rolls back regardless of the caller's.

Insert and update re-select the row by primary key inside the same unit
of work and return the stored state.

Usage:
    >>> jdbc = JdbcManager(create_batis_engine("sqlite:///app.db"))
    >>> user = jdbc.insert(User(id=1, name="A"))
    >>> user.name = "B"
    >>> jdbc.update(user).name
    'B'
    >>> jdbc.delete_by_pk(User, 1)
    1

Tags:
    facade, jdbc-manager, crud, transaction, seasarbatis
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import Any, TypeVar

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from seasarbatis.core.criteria import ComplexWhere, SimpleWhere
from seasarbatis.core.entity import (
    EntityMetadata,
    entity_params,
    primary_key_predicate,
    primary_key_values,
    resolve_metadata,
)
from seasarbatis.core.enums import CommandKind, Propagation
from seasarbatis.core.errors import NoPrimaryKeyError, OptimisticLockError
from seasarbatis.core.executor import QueryExecutor
from seasarbatis.core.logging import get_logger
from seasarbatis.core.query import Delete, Select, Update
from seasarbatis.core.session import batis_session_factory, engine_from_settings
from seasarbatis.core.settings import BatisSettings, get_settings
from seasarbatis.core.sql import (
    build_count_by_primary_key,
    build_delete,
    build_insert,
    build_update,
)
from seasarbatis.core.sql_file import SqlFileLoader
from seasarbatis.core.transaction import TransactionManager

logger = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class JdbcManager:
    """Seasar2-style data-mapping facade over a SQLAlchemy engine.

    Parameters:
        bind: an ``Engine`` or a zero-argument session factory
            (``sessionmaker``).
        sql_file_root: directory relative SQL-file paths resolve against.
        executor: replacement statement-execution boundary (tests).
    """

    def __init__(
        self,
        bind: Engine | Callable[[], Session],
        *,
        sql_file_root: str | Path | None = None,
        executor: QueryExecutor | None = None,
    ) -> None:
        if isinstance(bind, Engine):
            self.engine: Engine | None = bind
            session_factory: Callable[[], Session] = batis_session_factory(bind)
        else:
            self.engine = None
            session_factory = bind
        self.tx_manager = TransactionManager(session_factory)
        self.sql_files = SqlFileLoader(sql_file_root)
        self.executor = executor or QueryExecutor(self.tx_manager, self.sql_files)

    @classmethod
    def from_settings(cls, settings: BatisSettings | None = None) -> JdbcManager:
        """Build a manager (and its engine) from ``BATIS_*`` settings."""
        settings = settings or get_settings()
        return cls(engine_from_settings(settings), sql_file_root=settings.sql_file_root)

    def dispose(self) -> None:
        """Release the engine's connection pool, if this manager holds an engine."""
        if self.engine is not None:
            self.engine.dispose()

    # -- Transactions ------------------------------------------------------

    def transaction(self, callback: Callable[[JdbcManager], R], requires_new: bool = False) -> R:
        """Run ``callback(self)`` as one unit of work."""
        return self.tx_manager.execute(Propagation.of(requires_new), lambda: callback(self))

    def _in_tx(self, requires_new: bool, operation: Callable[[], R]) -> R:
        return self.tx_manager.execute(Propagation.of(requires_new), operation)

    # -- Entity operations -------------------------------------------------

    def insert(self, entity: T, *, requires_new: bool = False) -> T:
        """INSERT the entity's non-null fields and return the stored row."""
        metadata = resolve_metadata(type(entity))

        def operation() -> T:
            sql, params = build_insert(metadata, entity_params(entity))
            _, lastrowid = self.executor.execute_insert(sql, params)
            self._write_back_key(metadata, entity, lastrowid)
            logger.debug("entity_inserted", table=metadata.qualified_name, lastrowid=lastrowid)
            return self._reselect(metadata, entity)

        return self._in_tx(requires_new, operation)

    def update(self, entity: T, *, requires_new: bool = False) -> T:
        """UPDATE the entity's non-null, non-key fields by primary key.

        Raises:
            NoPrimaryKeyError: every key field is ``None``.
            OptimisticLockError: no row matched the key.
        """
        metadata = resolve_metadata(type(entity))

        def operation() -> T:
            sql, params = build_update(metadata, entity_params(entity))
            self._execute_update(metadata, sql, params, entity)
            return self._reselect(metadata, entity)

        return self._in_tx(requires_new, operation)

    def update_by_pk(
        self,
        entity_type: type[T],
        *pk_values: Any,
        requires_new: bool = False,
        **changes: Any,
    ) -> T:
        """UPDATE the given columns of the row identified by ``pk_values``."""
        metadata = resolve_metadata(entity_type)
        predicate = primary_key_predicate(metadata, pk_values)
        params = {metadata.column_for(name): value for name, value in changes.items()}
        params.update(predicate)

        def operation() -> T:
            sql, bound = build_update(metadata, params)
            self._execute_update(metadata, sql, bound, dict(predicate))
            return self.from_(entity_type).by_primary_key(*pk_values).get_single_result()

        return self._in_tx(requires_new, operation)

    def delete(self, entity: Any, *, requires_new: bool = False) -> int:
        """DELETE the entity's row by primary key; returns the affected-row count."""
        metadata = resolve_metadata(type(entity))
        keys = primary_key_values(entity)
        if all(value is None for value in keys.values()):
            raise NoPrimaryKeyError(
                f"Primary key of {metadata.qualified_name} is not set",
                table=metadata.qualified_name,
                entity_type=metadata.entity_type.__name__,
            )
        return self._delete(metadata, list(keys.items()), requires_new)

    def delete_by_pk(self, entity_type: type, *pk_values: Any, requires_new: bool = False) -> int:
        """DELETE by key values in declaration order; 0 when no row matched."""
        metadata = resolve_metadata(entity_type)
        return self._delete(metadata, primary_key_predicate(metadata, pk_values), requires_new)

    def insert_or_update(self, entity: T, *, requires_new: bool = False) -> T:
        """INSERT when no row has the entity's key, UPDATE otherwise.

        The existence check and the write are separate statements, so two
        concurrent callers can both see "absent" and race on the insert.
        """
        metadata = resolve_metadata(type(entity))
        keys = primary_key_values(entity)
        if all(value is None for value in keys.values()):
            return self.insert(entity, requires_new=requires_new)

        def operation() -> T:
            sql, params = build_count_by_primary_key(metadata, list(keys.items()))
            (count,) = self.executor.execute_select(sql, params, int)
            logger.debug("insert_or_update_checked", table=metadata.qualified_name, count=count)
            if count == 0:
                return self.insert(entity)
            return self.update(entity)

        return self._in_tx(requires_new, operation)

    def find_by_pk(self, entity: Any, *pk_values: Any, requires_new: bool = False) -> Any:
        """Load one row by primary key.

        ``entity`` is either an entity class followed by the key values, or
        an entity instance whose key fields are used.

        Raises:
            NotFoundError: no row has that key.
        """
        return self._by_pk(entity, pk_values, requires_new).get_single_result()

    def find_by_pk_no_exception(self, entity: Any, *pk_values: Any, requires_new: bool = False) -> Any:
        """Like :meth:`find_by_pk` but returns ``None`` when no row matches."""
        return self._by_pk(entity, pk_values, requires_new).suppress_exception().get_single_result()

    def find_all(
        self,
        entity_type: type[T],
        order_by: str | Sequence[str] = (),
        *,
        requires_new: bool = False,
    ) -> list[T]:
        """Every row of the entity's table, optionally ordered by one or more columns."""
        if isinstance(order_by, str):
            order_by = (order_by,)
        select = self.from_(entity_type, requires_new=requires_new)
        for column in order_by:
            select.order_by(column)
        return select.get_result_list()

    # -- Raw SQL -----------------------------------------------------------

    def select_by_sql(
        self,
        result_type: Any,
        sql: str,
        params: Mapping[str, Any] | None = None,
        *,
        requires_new: bool = False,
    ) -> list[Any]:
        return self.select(result_type, requires_new=requires_new).with_sql(sql).with_params(params).get_result_list()

    def select_by_sql_file(
        self,
        result_type: Any,
        sql_file: str | Path,
        params: Mapping[str, Any] | None = None,
        *,
        requires_new: bool = False,
    ) -> list[Any]:
        return (
            self.select(result_type, requires_new=requires_new)
            .with_sql_file(sql_file)
            .with_params(params)
            .get_result_list()
        )

    def insert_by_sql(self, sql: str, params: Mapping[str, Any] | None = None, *, requires_new: bool = False) -> int:
        return self._execute_sql(CommandKind.INSERT, sql, params, requires_new)

    def update_by_sql(self, sql: str, params: Mapping[str, Any] | None = None, *, requires_new: bool = False) -> int:
        return self._execute_sql(CommandKind.UPDATE, sql, params, requires_new)

    def delete_by_sql(self, sql: str, params: Mapping[str, Any] | None = None, *, requires_new: bool = False) -> int:
        return self._execute_sql(CommandKind.DELETE, sql, params, requires_new)

    def insert_by_sql_file(
        self, sql_file: str | Path, params: Mapping[str, Any] | None = None, *, requires_new: bool = False
    ) -> int:
        return self._execute_sql_file(CommandKind.INSERT, sql_file, params, requires_new)

    def update_by_sql_file(
        self, sql_file: str | Path, params: Mapping[str, Any] | None = None, *, requires_new: bool = False
    ) -> int:
        return self._execute_sql_file(CommandKind.UPDATE, sql_file, params, requires_new)

    def delete_by_sql_file(
        self, sql_file: str | Path, params: Mapping[str, Any] | None = None, *, requires_new: bool = False
    ) -> int:
        return self._execute_sql_file(CommandKind.DELETE, sql_file, params, requires_new)

    # -- Builders ----------------------------------------------------------

    def select(self, result_type: Any = None, *, requires_new: bool = False) -> Select[Any]:
        """Start a SELECT builder mapping rows onto ``result_type``."""
        return Select(self.executor, result_type, requires_new=requires_new)

    def from_(self, entity_type: type[T], *, requires_new: bool = False) -> Select[T]:
        """Start a SELECT builder targeting an entity class."""
        return Select(self.executor, requires_new=requires_new).from_(entity_type)

    def update_query(self, entity_type: type, *, requires_new: bool = False) -> Update:
        return Update(self.executor, entity_type, requires_new=requires_new)

    def delete_query(self, entity_type: type, *, requires_new: bool = False) -> Delete:
        return Delete(self.executor, entity_type, requires_new=requires_new)

    @staticmethod
    def where() -> SimpleWhere:
        return SimpleWhere()

    @staticmethod
    def complex_where() -> ComplexWhere:
        return ComplexWhere()

    # -- Internals ---------------------------------------------------------

    def _by_pk(self, entity: Any, pk_values: tuple[Any, ...], requires_new: bool) -> Select[Any]:
        if isinstance(entity, type):
            return self.from_(entity, requires_new=requires_new).by_primary_key(*pk_values)
        if pk_values:
            raise NoPrimaryKeyError("Pass key values with an entity class, not an entity instance")
        keys = primary_key_values(entity)
        return self.from_(type(entity), requires_new=requires_new).by_primary_key(*keys.values())

    def _reselect(self, metadata: EntityMetadata, entity: T) -> T:
        keys = primary_key_values(entity)
        if any(value is None for value in keys.values()):
            logger.warning(
                "reselect_skipped",
                table=metadata.qualified_name,
                reason="primary key not fully known after insert",
            )
            return entity
        return self.from_(metadata.entity_type).by_primary_key(*keys.values()).get_single_result()

    def _write_back_key(self, metadata: EntityMetadata, entity: Any, lastrowid: Any) -> None:
        # lastrowid is only the generated key for an integer rowid-style key
        if lastrowid is None or len(metadata.primary_key_columns) != 1:
            return
        (descriptor,) = metadata.primary_key_fields
        if descriptor.is_integer and descriptor.get(entity) is None:
            object.__setattr__(entity, descriptor.field_name, lastrowid)

    def _execute_update(
        self,
        metadata: EntityMetadata,
        sql: str,
        params: Mapping[str, Any],
        entity: Any,
    ) -> None:
        count = self.executor.execute(sql, params, CommandKind.UPDATE)
        if count == 0:
            logger.warning(
                "optimistic_lock_conflict",
                table=metadata.qualified_name,
                checked_columns=list(metadata.primary_key_columns),
            )
            raise OptimisticLockError(
                f"Update of {metadata.qualified_name} matched no row",
                entity=entity,
                checked_columns=metadata.primary_key_columns,
                table=metadata.qualified_name,
                entity_type=metadata.entity_type.__name__,
                sql=sql,
            )
        logger.debug("entity_updated", table=metadata.qualified_name, rows=count)

    def _delete(
        self,
        metadata: EntityMetadata,
        predicate: Sequence[tuple[str, Any]],
        requires_new: bool,
    ) -> int:
        sql, params = build_delete(metadata, predicate)
        count = self._in_tx(requires_new, lambda: self.executor.execute(sql, params, CommandKind.DELETE))
        logger.debug("entity_deleted", table=metadata.qualified_name, rows=count)
        return count

    def _execute_sql(
        self,
        kind: CommandKind,
        sql: str,
        params: Mapping[str, Any] | None,
        requires_new: bool,
    ) -> int:
        return self._in_tx(requires_new, lambda: self.executor.execute(sql, params, kind))

    def _execute_sql_file(
        self,
        kind: CommandKind,
        sql_file: str | Path,
        params: Mapping[str, Any] | None,
        requires_new: bool,
    ) -> int:
        return self._in_tx(requires_new, lambda: self.executor.execute_file(sql_file, params, kind))


__all__ = [
    "JdbcManager",
]
