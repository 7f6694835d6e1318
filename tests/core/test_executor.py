"""Tests for the SQLAlchemy-backed QueryExecutor."""

from dataclasses import dataclass
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from pydantic import BaseModel

from seasarbatis.core.enums import CommandKind, Propagation
from seasarbatis.core.errors import ExecutionError, StatementError
from seasarbatis.core.executor import QueryExecutor, map_row
from seasarbatis.core.session import batis_session_factory
from seasarbatis.core.sql_file import SqlFileLoader
from seasarbatis.core.transaction import TransactionManager
from tests._support.entities import User


@pytest.fixture
def tm(engine):
    return TransactionManager(batis_session_factory(engine))


@pytest.fixture
def executor(tm, sql_dir):
    return QueryExecutor(tm, SqlFileLoader(sql_dir))


@dataclass
class NameOnly:
    name: str | None = None


class UserModel(BaseModel):
    id: int
    name: str | None = None


class TestMapRow:
    row = {"ID": 1, "NAME": "A", "email_address": None, "active": 1}

    def test_dict(self):
        assert map_row(self.row, dict) == self.row
        assert map_row(self.row, None) == self.row

    def test_scalar(self):
        assert map_row({"COUNT(*)": 3}, int) == 3
        assert map_row({"n": "2.5"}, float) == 2.5
        assert map_row({"n": 4}, Decimal) == Decimal(4)
        assert map_row({"n": None}, int) is None

    def test_entity(self):
        user = map_row(self.row, User)
        assert (user.id, user.name) == (1, "A")

    def test_plain_dataclass(self):
        assert map_row(self.row, NameOnly) == NameOnly(name="A")

    def test_pydantic_model(self):
        model = map_row({"id": 1, "name": "A"}, UserModel)
        assert model == UserModel(id=1, name="A")


class TestExecute:
    def test_insert_returns_rowcount_and_lastrowid(self, executor, row_count):
        rowcount, lastrowid = executor.execute_insert("INSERT INTO users (name) VALUES (:name)", {"name": "A"})
        assert rowcount == 1
        assert lastrowid == 1
        assert row_count("users") == 1

    def test_update_returns_affected_rows(self, executor):
        executor.execute("INSERT INTO users (name) VALUES ('A'), ('A'), ('B')", kind=CommandKind.INSERT)
        count = executor.execute("UPDATE users SET name = :new WHERE name = :old", {"new": "C", "old": "A"})
        assert count == 2

    def test_select_maps_rows(self, executor):
        executor.execute("INSERT INTO users (id, name) VALUES (1, 'A'), (2, 'B')", kind=CommandKind.INSERT)
        users = executor.execute_select("SELECT * FROM users ORDER BY id", result_type=User)
        assert [u.name for u in users] == ["A", "B"]
        assert executor.execute_select("SELECT COUNT(*) FROM users", result_type=int) == [2]

    def test_execute_refuses_select(self, executor):
        with pytest.raises(StatementError):
            executor.execute("SELECT 1", kind=CommandKind.SELECT)

    def test_driver_error_wrapped_with_command_kind(self, executor):
        with pytest.raises(ExecutionError) as exc_info:
            executor.execute("UPDATE no_such_table SET x = 1", kind=CommandKind.UPDATE)

        error = exc_info.value
        assert error.command_kind is CommandKind.UPDATE
        assert error.context.command_kind == "UPDATE"
        assert error.context.sql == "UPDATE no_such_table SET x = 1"

    def test_failure_rolls_back_owned_transaction(self, executor, tm, row_count):
        def unit():
            executor.execute("INSERT INTO users (name) VALUES ('A')", kind=CommandKind.INSERT)
            executor.execute("INSERT INTO missing (x) VALUES (1)", kind=CommandKind.INSERT)

        with pytest.raises(ExecutionError):
            tm.execute(Propagation.REQUIRED, unit)

        assert row_count("users") == 0


class TestSessionSelection:
    def test_owns_transaction_when_none_is_active(self, executor, tm, row_count):
        executor.execute("INSERT INTO users (name) VALUES ('A')", kind=CommandKind.INSERT)
        assert tm.current_session() is None
        assert row_count("users") == 1

    def test_runs_on_scoped_session(self):
        session = MagicMock()
        session.execute.return_value.rowcount = 3
        fake = TransactionManager(lambda: session)
        executor = QueryExecutor(fake)

        assert executor.execute("DELETE FROM users") == 3
        session.commit.assert_called_once()
        session.close.assert_called_once()

    def test_joins_propagated_transaction(self, executor, tm, row_count):
        with tm.scope():
            executor.execute("INSERT INTO users (name) VALUES ('A')", kind=CommandKind.INSERT)
            assert executor.execute_select("SELECT COUNT(*) FROM users", result_type=int) == [1]
            assert row_count("users") == 0
        assert row_count("users") == 1

    def test_explicit_session(self, executor, engine, row_count):
        session = batis_session_factory(engine)()
        try:
            executor.execute("INSERT INTO users (name) VALUES ('A')", kind=CommandKind.INSERT, session=session)
            assert row_count("users") == 0
            session.commit()
        finally:
            session.close()
        assert row_count("users") == 1


class TestSqlFiles:
    def test_select_file(self, executor, sql_dir):
        (sql_dir / "by_name.sql").write_text("SELECT * FROM users WHERE name = /*name*/'X'")
        executor.execute("INSERT INTO users (id, name) VALUES (1, 'A'), (2, 'B')", kind=CommandKind.INSERT)
        rows = executor.execute_select_file("by_name.sql", {"name": "B"})
        assert [r["id"] for r in rows] == [2]

    def test_execute_file(self, executor, sql_dir, row_count):
        (sql_dir / "add.sql").write_text("INSERT INTO users (name) VALUES (/*name*/'X');")
        assert executor.execute_file("add.sql", {"name": "A"}, CommandKind.INSERT) == 1
        assert row_count("users") == 1
