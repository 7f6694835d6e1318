"""Where-clause criteria for the fluent builders.

``SimpleWhere`` is a conjunction of comparisons; ``ComplexWhere`` adds
OR-groups and nested criteria so arbitrary AND/OR trees can be expressed.
Property names may be given as field names or column names; both resolve
through the entity metadata.

As in Seasar2, a condition whose value is ``None`` is left out of the
clause, which makes optional search filters a one-liner::

    where = SimpleWhere().eq("status", status).ge("age", min_age)

Rendering binds every value to a fresh ``:w{i}`` placeholder.

Examples:
    >>> w = ComplexWhere().eq("tenant_id", 1).or_().eq("tenant_id", 2)
    >>> w.to_sql(metadata, Binder())
    'tenant_id = :w0 OR tenant_id = :w1'
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from seasarbatis.core.entity import EntityMetadata
from seasarbatis.core.sql import Binder, Criteria


@dataclass(frozen=True, slots=True)
class Condition:
    name: str
    operator: str
    value: Any = None

    def to_sql(self, metadata: EntityMetadata, binder: Binder) -> str:
        column = metadata.column_for(self.name)
        if self.operator in ("IS NULL", "IS NOT NULL"):
            return f"{column} {self.operator}"
        if self.operator in ("IN", "NOT IN"):
            values = list(self.value)
            if not values:
                # IN () matches nothing; NOT IN () matches everything
                return "1 = 0" if self.operator == "IN" else "1 = 1"
            binds = ", ".join(binder.bind(v) for v in values)
            return f"{column} {self.operator} ({binds})"
        return f"{column} {self.operator} {binder.bind(self.value)}"


class _Conditions:
    """Shared comparison methods; each returns ``self`` for chaining."""

    def __init__(self) -> None:
        self._items: list[Condition | Criteria] = []

    def _add(self, name: str, operator: str, value: Any) -> Any:
        if value is not None:
            self._items.append(Condition(name, operator, value))
        return self

    def eq(self, name: str, value: Any) -> Any:
        return self._add(name, "=", value)

    def ne(self, name: str, value: Any) -> Any:
        return self._add(name, "<>", value)

    def lt(self, name: str, value: Any) -> Any:
        return self._add(name, "<", value)

    def le(self, name: str, value: Any) -> Any:
        return self._add(name, "<=", value)

    def gt(self, name: str, value: Any) -> Any:
        return self._add(name, ">", value)

    def ge(self, name: str, value: Any) -> Any:
        return self._add(name, ">=", value)

    def like(self, name: str, pattern: str | None) -> Any:
        return self._add(name, "LIKE", pattern)

    def starts(self, name: str, prefix: str | None) -> Any:
        return self._add(name, "LIKE", None if prefix is None else f"{prefix}%")

    def ends(self, name: str, suffix: str | None) -> Any:
        return self._add(name, "LIKE", None if suffix is None else f"%{suffix}")

    def contains(self, name: str, part: str | None) -> Any:
        return self._add(name, "LIKE", None if part is None else f"%{part}%")

    def in_(self, name: str, values: Iterable[Any] | None) -> Any:
        return self._add(name, "IN", None if values is None else tuple(values))

    def not_in(self, name: str, values: Iterable[Any] | None) -> Any:
        return self._add(name, "NOT IN", None if values is None else tuple(values))

    def is_null(self, name: str) -> Any:
        self._items.append(Condition(name, "IS NULL"))
        return self

    def is_not_null(self, name: str) -> Any:
        self._items.append(Condition(name, "IS NOT NULL"))
        return self

    def _render(self, items: list[Condition | Criteria], metadata: EntityMetadata, binder: Binder) -> str:
        parts = []
        for item in items:
            if isinstance(item, Condition):
                parts.append(item.to_sql(metadata, binder))
            elif not item.is_empty():
                parts.append(f"({item.to_sql(metadata, binder)})")
        return " AND ".join(parts)


class SimpleWhere(_Conditions):
    """Conjunction of comparisons."""

    def is_empty(self) -> bool:
        return not self._items

    def to_sql(self, metadata: EntityMetadata, binder: Binder) -> str:
        return self._render(self._items, metadata, binder)

    def __repr__(self) -> str:
        return f"SimpleWhere({self._items!r})"


class ComplexWhere(_Conditions):
    """AND/OR tree of comparisons.

    Conditions accumulate into the current AND-group; ``or_()`` closes it
    and opens a new one. ``and_(criteria)`` nests a parenthesised criteria
    into the current group, ``or_(criteria)`` adds it as its own OR-branch.
    """

    def __init__(self) -> None:
        super().__init__()
        self._groups: list[list[Condition | Criteria]] = [self._items]

    def and_(self, criteria: Criteria) -> ComplexWhere:
        self._items.append(criteria)
        return self

    def or_(self, criteria: Criteria | None = None) -> ComplexWhere:
        self._items = []
        self._groups.append(self._items)
        if criteria is not None:
            self._items.append(criteria)
            self._items = []
            self._groups.append(self._items)
        return self

    @staticmethod
    def _live(group: list[Condition | Criteria]) -> list[Condition | Criteria]:
        return [i for i in group if isinstance(i, Condition) or not i.is_empty()]

    def _non_empty_groups(self) -> list[list[Condition | Criteria]]:
        return [g for g in self._groups if self._live(g)]

    def is_empty(self) -> bool:
        return not self._non_empty_groups()

    def to_sql(self, metadata: EntityMetadata, binder: Binder) -> str:
        groups = self._non_empty_groups()
        rendered = []
        for group in groups:
            sql = self._render(group, metadata, binder)
            # an AND-group needs parentheses only next to another OR-branch
            if len(groups) > 1 and len(self._live(group)) > 1:
                sql = f"({sql})"
            rendered.append(sql)
        return " OR ".join(rendered)

    def __repr__(self) -> str:
        return f"ComplexWhere({self._groups!r})"


__all__ = [
    "Condition",
    "SimpleWhere",
    "ComplexWhere",
]
