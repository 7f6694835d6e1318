"""Statement-execution boundary.

``QueryExecutor`` takes already-built SQL text plus a named-parameter
map and runs it through ``sqlalchemy.text()`` on a physical session. It
knows nothing about entity metadata beyond what the SQL text says; the
only entity-aware step is mapping result rows back onto a result type.

Session selection:

* an explicit ``session=`` argument runs the statement on that session
  inside a caller-managed transaction
* otherwise the statement joins the transaction propagated on the call
  chain (REQUIRED), opening and owning one when none is active

Driver failures (``SQLAlchemyError``) are wrapped once into
:class:`~seasarbatis.core.errors.ExecutionError` carrying the command kind
and SQL text.

Result types accepted by the select methods:

==================  ===================================================
``dict`` / ``None``  one ``dict`` per row (column → value)
scalar types         first column of each row (``int``, ``str``, …)
pydantic models      ``model_validate(row)``
entities             :func:`~seasarbatis.core.entity.to_entity`
other dataclasses    constructed from the matching field names
==================  ===================================================
"""

from __future__ import annotations

import dataclasses
import datetime
import decimal
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any, TypeVar

from sqlalchemy import text
from sqlalchemy.engine import CursorResult
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from seasarbatis.core.entity import is_entity, to_entity
from seasarbatis.core.enums import CommandKind, Propagation
from seasarbatis.core.errors import ExecutionError, StatementError
from seasarbatis.core.logging import get_logger
from seasarbatis.core.sql_file import SqlFileLoader
from seasarbatis.core.transaction import TransactionManager

logger = get_logger(__name__)

T = TypeVar("T")

_SCALAR_TYPES: tuple[type, ...] = (
    int,
    float,
    str,
    bool,
    bytes,
    decimal.Decimal,
    datetime.date,
    datetime.datetime,
    datetime.time,
)


def row_mapper(result_type: Any) -> Callable[[Mapping[str, Any]], Any]:
    """Return the function mapping one row (column → value) onto ``result_type``."""
    if result_type is None or result_type is dict:
        return dict

    if isinstance(result_type, type) and issubclass(result_type, _SCALAR_TYPES):
        return lambda row: _scalar(row, result_type)

    if hasattr(result_type, "model_validate"):
        return lambda row: result_type.model_validate(dict(row))

    if is_entity(result_type):
        return lambda row: to_entity(result_type, row)

    if dataclasses.is_dataclass(result_type):
        names = [f.name for f in dataclasses.fields(result_type) if f.init]

        def to_dataclass(row: Mapping[str, Any]) -> Any:
            lowered = {str(k).lower(): v for k, v in row.items()}
            return result_type(**{n: lowered[n.lower()] for n in names if n.lower() in lowered})

        return to_dataclass

    return lambda row: result_type(**row)


def map_row(row: Mapping[str, Any], result_type: Any) -> Any:
    """Map one result row onto ``result_type``."""
    return row_mapper(result_type)(row)


def _scalar(row: Mapping[str, Any], result_type: type) -> Any:
    value = next(iter(row.values()), None)
    if value is None or isinstance(value, result_type):
        return value
    if result_type in (int, float, str, decimal.Decimal):
        return result_type(value)
    return value


class QueryExecutor:
    """Runs SQL templates with named parameters on propagated sessions."""

    def __init__(
        self,
        tx_manager: TransactionManager,
        sql_files: SqlFileLoader | None = None,
    ) -> None:
        self.tx_manager = tx_manager
        self.sql_files = sql_files or SqlFileLoader()

    # -- Inline SQL --------------------------------------------------------

    def execute(
        self,
        sql: str,
        params: Mapping[str, Any] | None = None,
        kind: CommandKind = CommandKind.UPDATE,
        session: Session | None = None,
    ) -> int:
        """Run an INSERT/UPDATE/DELETE and return the affected-row count."""
        if kind.returns_rows:
            raise StatementError("Use execute_select for SELECT statements", sql=sql)
        return self._run(sql, params, kind, session, lambda r: r.rowcount)

    def execute_insert(
        self,
        sql: str,
        params: Mapping[str, Any] | None = None,
        session: Session | None = None,
    ) -> tuple[int, Any]:
        """Run an INSERT and return ``(rowcount, lastrowid)``.

        ``lastrowid`` is whatever the driver reports (``None`` when it
        does not expose generated keys).
        """
        return self._run(
            sql,
            params,
            CommandKind.INSERT,
            session,
            lambda r: (r.rowcount, getattr(r, "lastrowid", None)),
        )

    def execute_select(
        self,
        sql: str,
        params: Mapping[str, Any] | None = None,
        result_type: Any = dict,
        session: Session | None = None,
    ) -> list[Any]:
        """Run a SELECT and map every row onto ``result_type``."""
        mapper = row_mapper(result_type)
        return self._run(
            sql,
            params,
            CommandKind.SELECT,
            session,
            lambda r: [mapper(m) for m in r.mappings()],
        )

    # -- SQL files ---------------------------------------------------------

    def execute_file(
        self,
        sql_file: str | Path,
        params: Mapping[str, Any] | None = None,
        kind: CommandKind = CommandKind.UPDATE,
        session: Session | None = None,
    ) -> int:
        return self.execute(self.sql_files.load(sql_file), params, kind, session)

    def execute_select_file(
        self,
        sql_file: str | Path,
        params: Mapping[str, Any] | None = None,
        result_type: Any = dict,
        session: Session | None = None,
    ) -> list[Any]:
        return self.execute_select(self.sql_files.load(sql_file), params, result_type, session)

    # -- Internals ---------------------------------------------------------

    def _run(
        self,
        sql: str,
        params: Mapping[str, Any] | None,
        kind: CommandKind,
        session: Session | None,
        handler: Callable[[CursorResult[Any]], T],
    ) -> T:
        if session is not None:
            return self._run_on(session, sql, params, kind, handler)

        with self.tx_manager.scope(Propagation.REQUIRED) as active:
            return self._run_on(active, sql, params, kind, handler)

    def _run_on(
        self,
        session: Session,
        sql: str,
        params: Mapping[str, Any] | None,
        kind: CommandKind,
        handler: Callable[[CursorResult[Any]], T],
    ) -> T:
        bound = dict(params or {})
        try:
            result = session.execute(text(sql), bound)
            value = handler(result)
        except SQLAlchemyError as exc:
            logger.debug("statement_failed", command=kind.value, sql=sql, error=str(exc))
            raise ExecutionError(
                f"{kind.value} statement failed: {exc}",
                command_kind=kind,
                sql=sql,
                cause=exc,
            ) from exc
        logger.debug("statement_executed", command=kind.value, sql=sql, params=sorted(bound))
        return value


__all__ = [
    "QueryExecutor",
    "map_row",
    "row_mapper",
]
