"""Tests for dynamic SQL generation."""

from dataclasses import dataclass
from typing import Annotated

import pytest

from seasarbatis.core.criteria import SimpleWhere
from seasarbatis.core.entity import Id, entity_params, primary_key_predicate, resolve_metadata, table
from seasarbatis.core.enums import ClauseKind, CommandKind
from seasarbatis.core.errors import NoPrimaryKeyError, StatementError
from seasarbatis.core.sql import (
    Binder,
    Statement,
    bind_name,
    build_count_by_primary_key,
    build_delete,
    build_delete_where,
    build_insert,
    build_select_all,
    build_select_by_primary_key,
    build_select_where,
    build_update,
    build_update_where,
)
from tests._support.entities import Account, Member, User


@table("counters")
@dataclass
class Counter:
    id: Annotated[int | None, Id()] = None
    pk0: int | None = None
    w0: str | None = None


@pytest.fixture
def users():
    return resolve_metadata(User)


@pytest.fixture
def members():
    return resolve_metadata(Member)


class TestBinder:
    def test_allocates_sequential_names(self):
        binder = Binder()
        assert binder.bind("a") == ":w0"
        assert binder.bind("b") == ":w1"
        assert binder.params == {"w0": "a", "w1": "b"}

    def test_bind_name_sanitizes(self):
        assert bind_name("user_name") == "user_name"
        assert bind_name("order-id") == "order_id"

    def test_bind_name_moves_reserved_names(self):
        assert bind_name("pk0") == "v_pk0"
        assert bind_name("w12") == "v_w12"
        assert bind_name("pkg") == "pkg"
        assert bind_name("w") == "w"


class TestStatement:
    def test_duplicate_placeholder_rejected(self):
        statement = Statement(CommandKind.UPDATE, "t")
        statement.add(ClauseKind.SET, "a", "a", 1)
        with pytest.raises(StatementError, match="bound twice"):
            statement.add(ClauseKind.SET, "b", "a", 2)

    def test_built_statement_unpacks(self):
        sql, params = Statement(CommandKind.SELECT, "t").build()
        assert sql == "SELECT * FROM t"
        assert params == {}


class TestBuildInsert:
    def test_columns_follow_params_order(self, users):
        built = build_insert(users, {"name": "A", "id": 1})
        assert built.sql == "INSERT INTO users (name, id) VALUES (:name, :id)"
        assert built.params == {"name": "A", "id": 1}
        assert built.command is CommandKind.INSERT

    def test_from_entity(self, users):
        built = build_insert(users, entity_params(User(id=1, name="A", email="a@x")))
        assert built.sql == (
            "INSERT INTO users (id, name, email_address) VALUES (:id, :name, :email_address)"
        )

    def test_schema_qualified(self):
        built = build_insert(resolve_metadata(Account), {"account_no": "A-1"})
        assert built.sql.startswith("INSERT INTO billing.accounts ")

    def test_empty_params(self, users):
        with pytest.raises(StatementError):
            build_insert(users, {})


class TestBuildUpdate:
    def test_key_moves_to_where(self, users):
        built = build_update(users, entity_params(User(id=1, name="B")))
        assert built.sql == "UPDATE users SET name = :name WHERE id = :pk0"
        assert built.params == {"name": "B", "pk0": 1}

    def test_composite_key(self, members):
        built = build_update(members, {"tenant_id": 7, "id": 3, "name": "x"})
        assert built.sql == "UPDATE members SET name = :name WHERE tenant_id = :pk0 AND id = :pk1"
        assert built.params == {"name": "x", "pk0": 7, "pk1": 3}

    def test_key_order_follows_metadata(self, members):
        built = build_update(members, {"name": "x", "id": 3, "tenant_id": 7})
        assert built.sql.endswith("WHERE tenant_id = :pk0 AND id = :pk1")

    def test_all_key_values_missing(self, users):
        with pytest.raises(NoPrimaryKeyError):
            build_update(users, {"name": "B"})

    def test_nothing_to_set(self, users):
        with pytest.raises(StatementError, match="non-key"):
            build_update(users, {"id": 1})

    def test_columns_named_like_placeholders(self):
        built = build_update(resolve_metadata(Counter), {"id": 1, "pk0": 5, "w0": "x"})
        assert built.sql == "UPDATE counters SET pk0 = :v_pk0, w0 = :v_w0 WHERE id = :pk0"
        assert built.params == {"v_pk0": 5, "v_w0": "x", "pk0": 1}

    def test_columns_named_like_placeholders_with_criteria(self):
        built = build_update_where(resolve_metadata(Counter), {"pk0": 9}, SimpleWhere().eq("w0", "a"))
        assert built.sql == "UPDATE counters SET pk0 = :v_pk0 WHERE (w0 = :w0)"
        assert built.params == {"v_pk0": 9, "w0": "a"}


class TestKeyStatements:
    def test_delete(self, members):
        built = build_delete(members, primary_key_predicate(members, (1, 2)))
        assert built.sql == "DELETE FROM members WHERE tenant_id = :pk0 AND id = :pk1"
        assert built.params == {"pk0": 1, "pk1": 2}

    def test_delete_reorders_predicate(self, members):
        built = build_delete(members, [("id", 2), ("tenant_id", 1)])
        assert built.params == {"pk0": 1, "pk1": 2}

    def test_delete_incomplete_predicate(self, members):
        with pytest.raises(NoPrimaryKeyError):
            build_delete(members, [("id", 2)])

    def test_select_by_primary_key(self, users):
        built = build_select_by_primary_key(users, [("id", 5)])
        assert built.sql == "SELECT * FROM users WHERE id = :pk0"
        assert built.params == {"pk0": 5}

    def test_count_by_primary_key(self, members):
        built = build_count_by_primary_key(members, [("tenant_id", 1), ("id", 2)])
        assert built.sql == "SELECT COUNT(*) FROM members WHERE tenant_id = :pk0 AND id = :pk1"


class TestSelectAll:
    def test_plain(self, users):
        assert build_select_all(users).sql == "SELECT * FROM users"

    def test_order_by_field_name(self, users):
        built = build_select_all(users, [("email", True), ("id", False)])
        assert built.sql == "SELECT * FROM users ORDER BY email_address DESC, id ASC"


class TestCriteriaStatements:
    def test_select_where(self, users):
        built = build_select_where(users, SimpleWhere().eq("name", "A").ge("id", 2), [("id", False)])
        assert built.sql == "SELECT * FROM users WHERE (name = :w0 AND id >= :w1) ORDER BY id ASC"
        assert built.params == {"w0": "A", "w1": 2}

    def test_select_where_empty_criteria(self, users):
        assert build_select_where(users, SimpleWhere()).sql == "SELECT * FROM users"

    def test_update_where(self, users):
        built = build_update_where(users, {"active": False, "email": None}, SimpleWhere().eq("name", "A"))
        assert built.sql == (
            "UPDATE users SET active = :active, email_address = :email_address WHERE (name = :w0)"
        )
        assert built.params == {"active": False, "email_address": None, "w0": "A"}

    def test_update_where_refuses_empty_criteria(self, users):
        with pytest.raises(StatementError, match="unconditional"):
            build_update_where(users, {"name": "x"}, SimpleWhere())

    def test_update_where_needs_values(self, users):
        with pytest.raises(StatementError):
            build_update_where(users, {}, SimpleWhere().eq("id", 1))

    def test_delete_where(self, users):
        built = build_delete_where(users, SimpleWhere().in_("id", [1, 2]))
        assert built.sql == "DELETE FROM users WHERE (id IN (:w0, :w1))"

    def test_delete_where_refuses_empty_criteria(self, users):
        with pytest.raises(StatementError):
            build_delete_where(users, SimpleWhere().eq("name", None))
