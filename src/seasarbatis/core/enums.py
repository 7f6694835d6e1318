"""
Shared enums for seasarbatis.

Enums in this module are used by the SQL builder, the executor boundary,
the transaction manager and the error hierarchy. Import from here to
avoid import cycles between those modules.

STDLIB ONLY - NO PYDANTIC.
"""

from enum import Enum


class CommandKind(str, Enum):
    """
    Kind of SQL command handed to the executor boundary.

    The executor only needs the kind to choose between "return rows" and
    "return affected-row count"; errors raised from the executor carry it
    so a failure can be traced back to the statement type.
    """

    SELECT = "SELECT"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"

    @property
    def returns_rows(self) -> bool:
        return self is CommandKind.SELECT


class Propagation(str, Enum):
    """
    Transaction propagation policy.

    REQUIRED joins the transaction already active on the call chain or
    starts one. REQUIRES_NEW always starts an isolated transaction on a
    fresh physical session, suspending whatever was active.
    """

    REQUIRED = "REQUIRED"
    REQUIRES_NEW = "REQUIRES_NEW"

    @classmethod
    def of(cls, requires_new: bool) -> "Propagation":
        """Map the ``requires_new`` flag used across the manager API."""
        return cls.REQUIRES_NEW if requires_new else cls.REQUIRED


class TransactionState(str, Enum):
    """Role of the current call with respect to the active session."""

    NO_ACTIVE_SESSION = "NO_ACTIVE_SESSION"
    ACTIVE_PARTICIPANT = "ACTIVE_PARTICIPANT"
    ACTIVE_OWNER = "ACTIVE_OWNER"


class ClauseKind(str, Enum):
    """Tag for one clause of a structured statement."""

    # INSERT column / VALUES pair
    VALUE = "VALUE"
    # UPDATE ... SET column = :param
    SET = "SET"
    # WHERE column <op> :param (AND-chained)
    PREDICATE = "PREDICATE"
    # WHERE fragment rendered by a criteria object
    CRITERIA = "CRITERIA"
    # ORDER BY column [ASC|DESC]
    ORDER = "ORDER"


__all__ = [
    "CommandKind",
    "Propagation",
    "TransactionState",
    "ClauseKind",
]
