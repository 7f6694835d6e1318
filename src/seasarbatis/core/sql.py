"""Dynamic SQL generation from entity metadata.

Statements are assembled as a list of tagged clauses and rendered to
SQLAlchemy ``text()`` syntax with named ``:param`` binds. Values are
never interpolated into the SQL text.

Manifesto:
    Placeholder names are namespaced so one parameter map can carry a
    column's new value and the key value that locates the row:

    - **column name**  → value placeholders (INSERT VALUES, UPDATE SET);
      a column named like `pk{i}` or `w{i}` binds as `v_<column>`
    - **pk{i}**        → primary-key predicate, in metadata key order
    - **w{i}**         → values bound by criteria objects

Architecture:
    ::

        EntityMetadata + values
                │
                ▼
        Statement(command, table, clauses=[Clause(kind, column, param)])
                │ render()
                ▼
        BuiltStatement(sql, params, command)

        build_insert                INSERT INTO t (a, b) VALUES (:a, :b)
        build_update                UPDATE t SET b = :b WHERE a = :pk0
        build_delete                DELETE FROM t WHERE a = :pk0 AND c = :pk1
        build_select_by_primary_key SELECT * FROM t WHERE a = :pk0
        build_count_by_primary_key  SELECT COUNT(*) FROM t WHERE a = :pk0
        build_select_all            SELECT * FROM t [ORDER BY ...]
        build_select_where          SELECT * FROM t WHERE <criteria>
        build_update_where          UPDATE t SET b = :b WHERE <criteria>
        build_delete_where          DELETE FROM t WHERE <criteria>

Examples:
    >>> built = build_update(metadata, {"id": 1, "name": "B"})
    >>> built.sql
    'UPDATE users SET name = :name WHERE id = :pk0'
    >>> built.params
    {'name': 'B', 'pk0': 1}

Tags:
    sql, builder, parameter-binding, seasarbatis
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from seasarbatis.core.entity import EntityMetadata
from seasarbatis.core.enums import ClauseKind, CommandKind
from seasarbatis.core.errors import NoPrimaryKeyError, StatementError

_NON_WORD = re.compile(r"\W")
_RESERVED_BIND = re.compile(r"(?:pk|w)\d+")


def bind_name(column: str) -> str:
    """Placeholder name for a column value.

    The column name itself for plain identifiers. A column whose name
    looks like a key or criteria placeholder (``pk0``, ``w1``) is bound
    as ``v_<column>`` so the three namespaces never meet.
    """
    name = _NON_WORD.sub("_", column)
    if _RESERVED_BIND.fullmatch(name):
        return f"v_{name}"
    return name


class Binder:
    """Allocates unique ``{prefix}{i}`` placeholder names and collects their values."""

    def __init__(self, prefix: str = "w") -> None:
        self.prefix = prefix
        self.params: dict[str, Any] = {}

    def bind(self, value: Any) -> str:
        name = f"{self.prefix}{len(self.params)}"
        self.params[name] = value
        return f":{name}"


class Criteria(Protocol):
    """Anything that renders a WHERE fragment (see ``seasarbatis.core.criteria``)."""

    def is_empty(self) -> bool: ...

    def to_sql(self, metadata: EntityMetadata, binder: Binder) -> str: ...


@dataclass(frozen=True, slots=True)
class Clause:
    kind: ClauseKind
    column: str | None = None
    param: str | None = None
    operator: str = "="
    fragment: str | None = None


@dataclass(frozen=True)
class BuiltStatement:
    """Rendered SQL text and the parameter map it binds."""

    sql: str
    params: dict[str, Any]
    command: CommandKind

    def __iter__(self) -> Iterator[Any]:
        # allows ``sql, params = build_insert(...)``
        yield self.sql
        yield self.params


@dataclass
class Statement:
    """A statement under construction: tagged clauses plus bound values."""

    command: CommandKind
    table: str
    projection: str = "*"
    clauses: list[Clause] = field(default_factory=list)
    params: dict[str, Any] = field(default_factory=dict)

    def add(
        self,
        kind: ClauseKind,
        column: str,
        param: str,
        value: Any,
        operator: str = "=",
    ) -> Statement:
        if param in self.params:
            raise StatementError(
                f"Placeholder {param!r} bound twice in {self.command.value} on {self.table}",
                table=self.table,
            )
        self.clauses.append(Clause(kind, column, param, operator))
        self.params[param] = value
        return self

    def add_fragment(self, fragment: str, params: Mapping[str, Any]) -> Statement:
        clash = set(params) & set(self.params)
        if clash:
            raise StatementError(
                f"Placeholders {sorted(clash)} bound twice on {self.table}",
                table=self.table,
            )
        self.clauses.append(Clause(ClauseKind.CRITERIA, fragment=fragment))
        self.params.update(params)
        return self

    def add_order(self, column: str, descending: bool = False) -> Statement:
        self.clauses.append(Clause(ClauseKind.ORDER, column, operator="DESC" if descending else "ASC"))
        return self

    def _of(self, kind: ClauseKind) -> list[Clause]:
        return [c for c in self.clauses if c.kind is kind]

    def _where(self) -> str:
        parts = [f"{c.column} {c.operator} :{c.param}" for c in self._of(ClauseKind.PREDICATE)]
        parts += [f"({c.fragment})" for c in self._of(ClauseKind.CRITERIA)]
        return " WHERE " + " AND ".join(parts) if parts else ""

    def render(self) -> str:
        if self.command is CommandKind.INSERT:
            values = self._of(ClauseKind.VALUE)
            columns = ", ".join(c.column for c in values)
            binds = ", ".join(f":{c.param}" for c in values)
            return f"INSERT INTO {self.table} ({columns}) VALUES ({binds})"

        if self.command is CommandKind.UPDATE:
            sets = ", ".join(f"{c.column} = :{c.param}" for c in self._of(ClauseKind.SET))
            return f"UPDATE {self.table} SET {sets}{self._where()}"

        if self.command is CommandKind.DELETE:
            return f"DELETE FROM {self.table}{self._where()}"

        sql = f"SELECT {self.projection} FROM {self.table}{self._where()}"
        orders = self._of(ClauseKind.ORDER)
        if orders:
            sql += " ORDER BY " + ", ".join(f"{c.column} {c.operator}" for c in orders)
        return sql

    def build(self) -> BuiltStatement:
        return BuiltStatement(self.render(), dict(self.params), self.command)


# ── Primary-key helpers ──────────────────────────────────────────────────


def _ordered_predicate(
    metadata: EntityMetadata,
    predicate: Sequence[tuple[str, Any]],
) -> list[tuple[str, Any]]:
    by_column = dict(predicate)
    missing = [c for c in metadata.primary_key_columns if c not in by_column]
    if missing or len(by_column) != len(metadata.primary_key_columns):
        raise NoPrimaryKeyError(
            f"Primary-key predicate for {metadata.qualified_name} must cover "
            f"{list(metadata.primary_key_columns)}, got {list(by_column)}",
            table=metadata.qualified_name,
        )
    return [(c, by_column[c]) for c in metadata.primary_key_columns]


def _add_key_predicate(
    statement: Statement,
    metadata: EntityMetadata,
    predicate: Sequence[tuple[str, Any]],
) -> Statement:
    for i, (column, value) in enumerate(_ordered_predicate(metadata, predicate)):
        statement.add(ClauseKind.PREDICATE, column, f"pk{i}", value)
    return statement


# ── Entity statements ────────────────────────────────────────────────────


def build_insert(metadata: EntityMetadata, params: Mapping[str, Any]) -> BuiltStatement:
    """INSERT with one named placeholder per column, in ``params`` order."""
    if not params:
        raise StatementError(
            f"No column values to insert into {metadata.qualified_name}",
            table=metadata.qualified_name,
        )
    statement = Statement(CommandKind.INSERT, metadata.qualified_name)
    for column, value in params.items():
        statement.add(ClauseKind.VALUE, column, bind_name(column), value)
    return statement.build()


def build_update(metadata: EntityMetadata, params: Mapping[str, Any]) -> BuiltStatement:
    """UPDATE by primary key: key columns drive WHERE (``pk{i}``), the rest go to SET."""
    keys = metadata.primary_key_columns
    key_values = [(c, params.get(c)) for c in keys]
    if all(value is None for _, value in key_values):
        raise NoPrimaryKeyError(
            f"Primary key of {metadata.qualified_name} is not set",
            table=metadata.qualified_name,
            entity_type=metadata.entity_type.__name__,
        )

    statement = Statement(CommandKind.UPDATE, metadata.qualified_name)
    for column, value in params.items():
        if column in keys:
            continue
        statement.add(ClauseKind.SET, column, bind_name(column), value)
    if not statement.params:
        raise StatementError(
            f"No non-key column values to update on {metadata.qualified_name}",
            table=metadata.qualified_name,
        )
    return _add_key_predicate(statement, metadata, key_values).build()


def build_delete(
    metadata: EntityMetadata,
    predicate: Sequence[tuple[str, Any]],
) -> BuiltStatement:
    """DELETE by primary key."""
    statement = Statement(CommandKind.DELETE, metadata.qualified_name)
    return _add_key_predicate(statement, metadata, predicate).build()


def build_select_by_primary_key(
    metadata: EntityMetadata,
    predicate: Sequence[tuple[str, Any]],
) -> BuiltStatement:
    """``SELECT *`` by primary key."""
    statement = Statement(CommandKind.SELECT, metadata.qualified_name)
    return _add_key_predicate(statement, metadata, predicate).build()


def build_count_by_primary_key(
    metadata: EntityMetadata,
    predicate: Sequence[tuple[str, Any]],
) -> BuiltStatement:
    """``SELECT COUNT(*)`` by primary key (existence check)."""
    statement = Statement(CommandKind.SELECT, metadata.qualified_name, projection="COUNT(*)")
    return _add_key_predicate(statement, metadata, predicate).build()


def build_select_all(
    metadata: EntityMetadata,
    order_by: Sequence[tuple[str, bool]] = (),
) -> BuiltStatement:
    """Unconditional ``SELECT *``."""
    statement = Statement(CommandKind.SELECT, metadata.qualified_name)
    for column, descending in order_by:
        statement.add_order(metadata.column_for(column), descending)
    return statement.build()


# ── Criteria statements ──────────────────────────────────────────────────


def _add_criteria(statement: Statement, metadata: EntityMetadata, criteria: Criteria) -> Statement:
    binder = Binder("w")
    fragment = criteria.to_sql(metadata, binder)
    if fragment:
        statement.add_fragment(fragment, binder.params)
    return statement


def build_select_where(
    metadata: EntityMetadata,
    criteria: Criteria,
    order_by: Sequence[tuple[str, bool]] = (),
) -> BuiltStatement:
    """``SELECT *`` filtered by a criteria object."""
    statement = _add_criteria(Statement(CommandKind.SELECT, metadata.qualified_name), metadata, criteria)
    for column, descending in order_by:
        statement.add_order(metadata.column_for(column), descending)
    return statement.build()


def build_update_where(
    metadata: EntityMetadata,
    values: Mapping[str, Any],
    criteria: Criteria,
) -> BuiltStatement:
    """UPDATE of the given columns on every row matching ``criteria``."""
    if not values:
        raise StatementError(
            f"No column values to update on {metadata.qualified_name}",
            table=metadata.qualified_name,
        )
    if criteria.is_empty():
        raise StatementError(
            f"Refusing unconditional UPDATE on {metadata.qualified_name}",
            table=metadata.qualified_name,
        )
    statement = Statement(CommandKind.UPDATE, metadata.qualified_name)
    for name, value in values.items():
        column = metadata.column_for(name)
        statement.add(ClauseKind.SET, column, bind_name(column), value)
    return _add_criteria(statement, metadata, criteria).build()


def build_delete_where(metadata: EntityMetadata, criteria: Criteria) -> BuiltStatement:
    """DELETE of every row matching ``criteria``."""
    if criteria.is_empty():
        raise StatementError(
            f"Refusing unconditional DELETE on {metadata.qualified_name}",
            table=metadata.qualified_name,
        )
    statement = Statement(CommandKind.DELETE, metadata.qualified_name)
    return _add_criteria(statement, metadata, criteria).build()


__all__ = [
    "Binder",
    "BuiltStatement",
    "Clause",
    "Criteria",
    "Statement",
    "bind_name",
    "build_insert",
    "build_update",
    "build_delete",
    "build_select_by_primary_key",
    "build_count_by_primary_key",
    "build_select_all",
    "build_select_where",
    "build_update_where",
    "build_delete_where",
]
