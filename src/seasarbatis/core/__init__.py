"""seasarbatis core -- entity metadata, SQL generation, execution and transactions.

Architecture::

    Layer 1 -- Types & Errors
        enums.py        CommandKind, Propagation, TransactionState, ClauseKind
        errors.py       BatisError hierarchy (category, retryable, context)
        result.py       Ok / Err envelope for single-row lookups

    Layer 2 -- Mapping & SQL
        entity.py       @table / Id / Column declarations + metadata resolver
        sql.py          Clause-list statement builder (:name binds)
        criteria.py     SimpleWhere / ComplexWhere
        sql_file.py     SQL-file loader with two-way SQL conversion

    Layer 3 -- Execution & Transactions
        session.py      Engine + session factories (SQLAlchemy)
        transaction.py  REQUIRED / REQUIRES_NEW propagation
        executor.py     text() execution boundary + row mapping
        query.py        Select / Update / Delete builders

    Cross-cutting
        logging.py      structlog configuration
        settings.py     BATIS_* settings (pydantic-settings)
"""

from seasarbatis.core.criteria import ComplexWhere, SimpleWhere
from seasarbatis.core.entity import (
    Column,
    EntityMetadata,
    FieldDescriptor,
    Id,
    Transient,
    clear_metadata_cache,
    entity_params,
    is_entity,
    primary_key_predicate,
    primary_key_values,
    resolve_metadata,
    table,
    to_entity,
)
from seasarbatis.core.enums import ClauseKind, CommandKind, Propagation, TransactionState
from seasarbatis.core.errors import (
    AmbiguousResultError,
    BatisError,
    ConfigError,
    ErrorCategory,
    ErrorContext,
    ExecutionError,
    MetadataError,
    NoPrimaryKeyError,
    NotFoundError,
    OptimisticLockError,
    SqlFileError,
    StatementError,
    TransactionError,
    is_domain_error,
    is_retryable,
)
from seasarbatis.core.executor import QueryExecutor
from seasarbatis.core.query import Delete, Select, Update
from seasarbatis.core.result import Err, Ok, Result, resolve_single, single_row
from seasarbatis.core.sql_file import SqlFileLoader, convert_two_way_sql
from seasarbatis.core.transaction import TransactionContext, TransactionManager

__all__ = [
    # entity
    "Column",
    "EntityMetadata",
    "FieldDescriptor",
    "Id",
    "Transient",
    "clear_metadata_cache",
    "entity_params",
    "is_entity",
    "primary_key_predicate",
    "primary_key_values",
    "resolve_metadata",
    "table",
    "to_entity",
    # enums
    "ClauseKind",
    "CommandKind",
    "Propagation",
    "TransactionState",
    # errors
    "AmbiguousResultError",
    "BatisError",
    "ConfigError",
    "ErrorCategory",
    "ErrorContext",
    "ExecutionError",
    "MetadataError",
    "NoPrimaryKeyError",
    "NotFoundError",
    "OptimisticLockError",
    "SqlFileError",
    "StatementError",
    "TransactionError",
    "is_domain_error",
    "is_retryable",
    # criteria / builders
    "ComplexWhere",
    "SimpleWhere",
    "Select",
    "Update",
    "Delete",
    # execution
    "QueryExecutor",
    "SqlFileLoader",
    "convert_two_way_sql",
    "TransactionContext",
    "TransactionManager",
    # result
    "Ok",
    "Err",
    "Result",
    "resolve_single",
    "single_row",
]
