"""Entity declarations and the metadata resolver.

Entities are plain dataclasses (or annotated classes) whose fields carry
``typing.Annotated`` markers. The resolver reads those declarations once
per type and produces an immutable :class:`EntityMetadata` describing the
table, the column ↔ field mapping and the primary key.

Declaring an entity::

    from dataclasses import dataclass
    from typing import Annotated

    from seasarbatis import Column, Id, table

    @table("users", schema="app")
    @dataclass
    class User:
        id: Annotated[int | None, Id()] = None
        name: Annotated[str | None, Column("user_name")] = None
        active: bool = True

        def is_active(self) -> bool:
            return bool(self.active)

Resolution rules:

* table name comes from ``@table``; without it the lower-cased class name
  is used and a ``table_annotation_missing`` warning is logged
* a declared schema is prefixed as ``schema.table``
* column name comes from ``Column(...)``; without it the field name
* primary-key columns keep their declaration order
* ``Transient()`` fields and ``ClassVar`` attributes are not mapped
* dataclass ``field(metadata={"id": True, "column": "x"})`` is accepted as
  an alternative to ``Annotated`` markers

Tags:
    entity, metadata, annotations, reflection, seasarbatis
"""

from __future__ import annotations

import dataclasses
import threading
import typing
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType, UnionType
from typing import Annotated, Any, ClassVar, TypeVar, get_args, get_origin

from seasarbatis.core.errors import MetadataError, NoPrimaryKeyError
from seasarbatis.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

_TABLE_ATTR = "__batis_table__"


# ── Declarations ─────────────────────────────────────────────────────────


class Id:
    """Marks a field as (part of) the primary key."""

    def __repr__(self) -> str:
        return "Id()"


class Column:
    """Maps a field to a column with a different name."""

    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return f"Column({self.name!r})"


class Transient:
    """Excludes a field from the column mapping."""

    def __repr__(self) -> str:
        return "Transient()"


@dataclass(frozen=True, slots=True)
class TableSpec:
    name: str | None
    schema: str | None = None


def table(name: str | None = None, *, schema: str | None = None) -> Any:
    """Class decorator declaring the table (and optional schema) of an entity."""

    def decorator(cls: type[T]) -> type[T]:
        setattr(cls, _TABLE_ATTR, TableSpec(name, schema))
        return cls

    return decorator


# ── Metadata ─────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class FieldDescriptor:
    """One mapped field of an entity."""

    field_name: str
    column_name: str
    is_primary_key: bool
    is_boolean: bool = False
    is_integer: bool = False

    def get(self, entity: Any) -> Any:
        """Read the field's current value.

        For boolean fields an ``is_<field>`` method on the entity wins over
        plain attribute access.
        """
        if self.is_boolean:
            getter = getattr(entity, f"is_{self.field_name}", None)
            if callable(getter):
                return getter()
        return getattr(entity, self.field_name, None)


@dataclass(frozen=True)
class EntityMetadata:
    """Resolved, read-only description of an entity type."""

    entity_type: type
    table_name: str
    schema: str | None
    columns: Mapping[str, FieldDescriptor]
    primary_key_columns: tuple[str, ...]

    @property
    def qualified_name(self) -> str:
        """Table name as it appears in SQL (``schema.table`` when declared)."""
        if self.schema:
            return f"{self.schema}.{self.table_name}"
        return self.table_name

    @property
    def primary_key_fields(self) -> tuple[FieldDescriptor, ...]:
        return tuple(self.columns[c] for c in self.primary_key_columns)

    def column_for(self, name: str) -> str:
        """Resolve a field name or column name to the column name."""
        if name in self.columns:
            return name
        lowered = name.lower()
        for column, descriptor in self.columns.items():
            if descriptor.field_name == name or column.lower() == lowered:
                return column
        raise MetadataError(
            f"{self.entity_type.__name__} has no field or column named {name!r}",
            table=self.qualified_name,
            entity_type=self.entity_type.__name__,
        )


_METADATA_CACHE: dict[type, EntityMetadata] = {}
_CACHE_LOCK = threading.Lock()


def resolve_metadata(entity_type: type) -> EntityMetadata:
    """Return the metadata of ``entity_type``, resolving it on first use.

    Raises:
        MetadataError: if the type is not a class, maps no field or
            declares no primary key.
    """
    if not isinstance(entity_type, type):
        raise MetadataError(f"Entity type must be a class, got {entity_type!r}")

    cached = _METADATA_CACHE.get(entity_type)
    if cached is not None:
        return cached

    metadata = _build_metadata(entity_type)
    with _CACHE_LOCK:
        return _METADATA_CACHE.setdefault(entity_type, metadata)


def is_entity(candidate: Any) -> bool:
    """True for a class declared with ``@table`` or carrying an ``Id`` field."""
    if not isinstance(candidate, type):
        return False
    if candidate in _METADATA_CACHE or hasattr(candidate, _TABLE_ATTR):
        return True
    try:
        hints = typing.get_type_hints(candidate, include_extras=True)
    except (NameError, TypeError):
        return False
    if any(_is_marker(m, Id) for hint in hints.values() for m in _split_annotated(hint)[1]):
        return True
    if dataclasses.is_dataclass(candidate):
        return any(f.metadata.get("id") for f in dataclasses.fields(candidate))
    return False


def clear_metadata_cache() -> None:
    """Forget every resolved entity (test helper)."""
    with _CACHE_LOCK:
        _METADATA_CACHE.clear()


def _build_metadata(entity_type: type) -> EntityMetadata:
    type_name = entity_type.__name__
    spec: TableSpec | None = getattr(entity_type, _TABLE_ATTR, None)
    if spec is None or not spec.name:
        table_name = type_name.lower()
        logger.warning(
            "table_annotation_missing",
            entity_type=type_name,
            table=table_name,
        )
    else:
        table_name = spec.name
    schema = spec.schema if spec else None

    try:
        hints = typing.get_type_hints(entity_type, include_extras=True)
    except (NameError, TypeError) as exc:
        raise MetadataError(
            f"Cannot resolve annotations of {type_name}: {exc}",
            entity_type=type_name,
            cause=exc,
        ) from exc

    field_meta: dict[str, Mapping[str, Any]] = {}
    if dataclasses.is_dataclass(entity_type):
        names = [f.name for f in dataclasses.fields(entity_type)]
        field_meta = {f.name: f.metadata for f in dataclasses.fields(entity_type)}
    else:
        names = [n for n in hints if not n.startswith("_")]

    columns: dict[str, FieldDescriptor] = {}
    primary_keys: list[str] = []
    for name in names:
        hint = hints.get(name)
        if hint is None or get_origin(hint) is ClassVar:
            continue
        base, markers = _split_annotated(hint)
        if any(_is_marker(m, Transient) for m in markers):
            continue

        extra = field_meta.get(name, {})
        column_name = extra.get("column") or name
        for marker in markers:
            if isinstance(marker, Column):
                column_name = marker.name
        is_pk = bool(extra.get("id")) or any(_is_marker(m, Id) for m in markers)

        if column_name in columns:
            raise MetadataError(
                f"{type_name} maps column {column_name!r} twice",
                entity_type=type_name,
                table=table_name,
            )
        columns[column_name] = FieldDescriptor(
            field_name=name,
            column_name=column_name,
            is_primary_key=is_pk,
            is_boolean=_has_base(base, bool),
            is_integer=_has_base(base, int),
        )
        if is_pk:
            primary_keys.append(column_name)

    if not columns:
        raise MetadataError(f"{type_name} declares no mapped fields", entity_type=type_name)
    if not primary_keys:
        raise MetadataError(
            f"{type_name} declares no primary-key field (annotate one with Id())",
            entity_type=type_name,
            table=table_name,
        )

    logger.debug(
        "entity_metadata_resolved",
        entity_type=type_name,
        table=table_name,
        schema=schema,
        columns=list(columns),
        primary_key=primary_keys,
    )
    return EntityMetadata(
        entity_type=entity_type,
        table_name=table_name,
        schema=schema,
        columns=MappingProxyType(columns),
        primary_key_columns=tuple(primary_keys),
    )


def _split_annotated(hint: Any) -> tuple[Any, tuple[Any, ...]]:
    if get_origin(hint) is Annotated:
        base, *markers = get_args(hint)
        return base, tuple(markers)
    return hint, ()


def _is_marker(marker: Any, kind: type) -> bool:
    return marker is kind or isinstance(marker, kind)


def _has_base(base: Any, kind: type) -> bool:
    """True when ``base`` is ``kind`` or an optional/union containing it (exact match)."""
    if base is kind:
        return True
    if get_origin(base) in (typing.Union, UnionType):
        return kind in get_args(base)
    return False


# ── Entity ↔ values ──────────────────────────────────────────────────────


def entity_params(entity: Any, *, include_none: bool = False) -> dict[str, Any]:
    """Column → current value for every mapped field, in declaration order."""
    metadata = resolve_metadata(type(entity))
    params: dict[str, Any] = {}
    for column, descriptor in metadata.columns.items():
        value = descriptor.get(entity)
        if value is None and not include_none:
            continue
        params[column] = value
    return params


def primary_key_values(entity: Any) -> dict[str, Any]:
    """Primary-key column → value, in the metadata's key order."""
    metadata = resolve_metadata(type(entity))
    return {column: metadata.columns[column].get(entity) for column in metadata.primary_key_columns}


def primary_key_predicate(
    metadata: EntityMetadata,
    values: Sequence[Any] | Mapping[str, Any],
) -> list[tuple[str, Any]]:
    """Build the ordered ``(column, value)`` key predicate.

    ``values`` is either positional (metadata key order) or a mapping keyed
    by field or column name.
    """
    keys = metadata.primary_key_columns
    if isinstance(values, Mapping):
        by_column = {metadata.column_for(k): v for k, v in values.items()}
        missing = [c for c in keys if c not in by_column]
        if missing:
            raise NoPrimaryKeyError(
                f"Missing primary-key values for {missing}",
                table=metadata.qualified_name,
            )
        return [(c, by_column[c]) for c in keys]

    if len(values) != len(keys):
        raise NoPrimaryKeyError(
            f"{metadata.entity_type.__name__} has {len(keys)} primary-key column(s), "
            f"got {len(values)} value(s)",
            table=metadata.qualified_name,
        )
    return list(zip(keys, values, strict=True))


def to_entity(entity_type: type[T], row: Mapping[str, Any]) -> T:
    """Build an entity from a result row.

    Column names are matched case-insensitively; columns the entity does
    not map are ignored and unmapped fields are left ``None``.
    """
    metadata = resolve_metadata(entity_type)
    lowered = {str(k).lower(): v for k, v in row.items()}
    values = {
        descriptor.field_name: lowered.get(column.lower())
        for column, descriptor in metadata.columns.items()
    }

    if dataclasses.is_dataclass(entity_type):
        init_names = {f.name for f in dataclasses.fields(entity_type) if f.init}
        instance = entity_type(**{k: v for k, v in values.items() if k in init_names})
        for name, value in values.items():
            if name not in init_names:
                object.__setattr__(instance, name, value)
        return instance

    instance = entity_type.__new__(entity_type)
    for name, value in values.items():
        setattr(instance, name, value)
    return instance


__all__ = [
    "Id",
    "Column",
    "Transient",
    "TableSpec",
    "table",
    "FieldDescriptor",
    "EntityMetadata",
    "resolve_metadata",
    "is_entity",
    "clear_metadata_cache",
    "entity_params",
    "primary_key_values",
    "primary_key_predicate",
    "to_entity",
]
