"""Tests for REQUIRED / REQUIRES_NEW propagation."""

import threading
from unittest.mock import MagicMock

import pytest
from sqlalchemy import text

from seasarbatis.core import transaction as transaction_module
from seasarbatis.core.enums import Propagation, TransactionState
from seasarbatis.core.errors import NotFoundError, OptimisticLockError, TransactionError
from seasarbatis.core.session import batis_session_factory
from seasarbatis.core.transaction import TransactionManager

REQUIRED = Propagation.REQUIRED
REQUIRES_NEW = Propagation.REQUIRES_NEW


class FakeSessionFactory:
    """Hands out MagicMock sessions and remembers them in order."""

    def __init__(self):
        self.sessions: list[MagicMock] = []

    def __call__(self):
        session = MagicMock(name=f"session{len(self.sessions)}")
        self.sessions.append(session)
        return session


@pytest.fixture
def factory():
    return FakeSessionFactory()


@pytest.fixture
def tm(factory):
    return TransactionManager(factory)


class TestRequired:
    def test_owner_commits_and_closes(self, tm, factory):
        result = tm.execute(REQUIRED, lambda: "done")

        assert result == "done"
        (session,) = factory.sessions
        session.commit.assert_called_once()
        session.rollback.assert_not_called()
        session.close.assert_called_once()
        assert tm.current_session() is None

    def test_nested_required_joins(self, tm, factory):
        seen = []

        def inner():
            seen.append((tm.current_session(), tm.current_state()))

        def outer():
            seen.append((tm.current_session(), tm.current_state()))
            tm.execute(REQUIRED, inner)

        tm.execute(REQUIRED, outer)

        (session,) = factory.sessions
        assert seen == [
            (session, TransactionState.ACTIVE_OWNER),
            (session, TransactionState.ACTIVE_PARTICIPANT),
        ]
        session.commit.assert_called_once()
        session.close.assert_called_once()

    def test_participant_failure_rolls_back_once_at_owner(self, tm, factory):
        def inner():
            raise RuntimeError("boom")

        with pytest.raises(TransactionError) as exc_info:
            tm.execute(REQUIRED, lambda: tm.execute(REQUIRED, inner))

        (session,) = factory.sessions
        session.rollback.assert_called_once()
        session.commit.assert_not_called()
        session.close.assert_called_once()
        assert isinstance(exc_info.value.cause, RuntimeError)

    def test_unexpected_error_wrapped_once(self, tm):
        def fail():
            raise ValueError("bad")

        with pytest.raises(TransactionError) as exc_info:
            tm.execute(REQUIRED, fail)

        assert exc_info.value.__cause__.__class__ is ValueError
        assert exc_info.value.context.metadata["propagation"] == "REQUIRED"

    @pytest.mark.parametrize(
        "error",
        [
            NotFoundError("none"),
            OptimisticLockError("stale", entity=None, checked_columns=("id",)),
        ],
    )
    def test_domain_errors_pass_unchanged(self, tm, factory, error):
        def fail():
            raise error

        with pytest.raises(type(error)) as exc_info:
            tm.execute(REQUIRED, fail)

        assert exc_info.value is error
        factory.sessions[0].rollback.assert_called_once()

    def test_base_exception_is_not_wrapped(self, tm, factory):
        def interrupt():
            raise KeyboardInterrupt

        with pytest.raises(KeyboardInterrupt):
            tm.execute(REQUIRED, interrupt)

        factory.sessions[0].rollback.assert_called_once()
        factory.sessions[0].close.assert_called_once()

    def test_commit_failure_rolls_back(self, tm, factory):
        def work():
            tm.current_session().commit.side_effect = RuntimeError("disk full")

        with pytest.raises(TransactionError, match="Commit"):
            tm.execute(REQUIRED, work)

        session = factory.sessions[0]
        session.rollback.assert_called_once()
        session.close.assert_called_once()
        assert tm.current_session() is None


class TestRequiresNew:
    def test_suspends_and_restores(self, tm, factory):
        seen = {}

        def inner():
            seen["inner"] = tm.current_session()
            seen["inner_state"] = tm.current_state()

        def outer():
            seen["outer"] = tm.current_session()
            tm.execute(REQUIRES_NEW, inner)
            seen["after"] = tm.current_session()

        tm.execute(REQUIRED, outer)

        outer_session, inner_session = factory.sessions
        assert seen["outer"] is outer_session
        assert seen["inner"] is inner_session
        assert seen["inner_state"] is TransactionState.ACTIVE_OWNER
        assert seen["after"] is outer_session
        inner_session.commit.assert_called_once()
        outer_session.commit.assert_called_once()

    def test_inner_failure_does_not_roll_back_outer(self, tm, factory):
        def inner():
            raise RuntimeError("inner")

        def outer():
            with pytest.raises(TransactionError):
                tm.execute(REQUIRES_NEW, inner)
            assert tm.current_session() is factory.sessions[0]
            return "outer ok"

        assert tm.execute(REQUIRED, outer) == "outer ok"

        outer_session, inner_session = factory.sessions
        inner_session.rollback.assert_called_once()
        inner_session.close.assert_called_once()
        outer_session.rollback.assert_not_called()
        outer_session.commit.assert_called_once()

    def test_outer_failure_keeps_inner_commit(self, tm, factory):
        def outer():
            tm.execute(REQUIRES_NEW, lambda: None)
            raise RuntimeError("outer")

        with pytest.raises(TransactionError):
            tm.execute(REQUIRED, outer)

        outer_session, inner_session = factory.sessions
        inner_session.commit.assert_called_once()
        outer_session.rollback.assert_called_once()

    def test_without_active_transaction(self, tm, factory):
        tm.execute(REQUIRES_NEW, lambda: None)
        factory.sessions[0].commit.assert_called_once()


class TestResourceHandling:
    def test_rollback_failure_does_not_mask_original(self, tm, factory, monkeypatch):
        logger = MagicMock()
        monkeypatch.setattr(transaction_module, "logger", logger)

        def fail():
            tm.current_session().rollback.side_effect = RuntimeError("connection lost")
            raise NotFoundError("original")

        with pytest.raises(NotFoundError, match="original"):
            tm.execute(REQUIRED, fail)

        logger.error.assert_called_once()
        assert logger.error.call_args.args[0] == "transaction_rollback_failed"
        factory.sessions[0].close.assert_called_once()

    def test_close_failure_is_logged(self, tm, factory, monkeypatch):
        logger = MagicMock()
        monkeypatch.setattr(transaction_module, "logger", logger)

        def work():
            tm.current_session().close.side_effect = RuntimeError("close failed")
            return 1

        assert tm.execute(REQUIRED, work) == 1
        logger.warning.assert_called_once()
        assert tm.current_state() is TransactionState.NO_ACTIVE_SESSION

    def test_every_session_closed_once(self, tm, factory):
        def level3():
            raise RuntimeError("deep")

        def level2():
            tm.execute(REQUIRED, level3)

        def level1():
            with pytest.raises(TransactionError):
                tm.execute(REQUIRES_NEW, level2)
            tm.execute(REQUIRED, lambda: None)

        tm.execute(REQUIRED, level1)

        assert len(factory.sessions) == 2
        for session in factory.sessions:
            session.close.assert_called_once()


class TestIntrospection:
    def test_depth(self, tm):
        depths = []

        def inner():
            depths.append(tm.depth)

        def outer():
            depths.append(tm.depth)
            tm.execute(REQUIRED, inner)

        assert tm.depth == 0
        tm.execute(REQUIRED, outer)
        assert depths == [1, 2]

    def test_scope_yields_session(self, tm, factory):
        with tm.scope() as session:
            assert session is tm.current_session()
        assert session is factory.sessions[0]
        session.commit.assert_called_once()

    def test_context_is_not_shared_between_threads(self, tm):
        seen = []

        def worker():
            seen.append(tm.current_session())

        def outer():
            thread = threading.Thread(target=worker)
            thread.start()
            thread.join()

        tm.execute(REQUIRED, outer)
        assert seen == [None]

    def test_managers_are_independent(self, factory):
        first = TransactionManager(factory)
        second = TransactionManager(factory)

        def outer():
            assert second.current_session() is None

        first.execute(REQUIRED, outer)


class TestWithSqlite:
    """Propagation against a real database file."""

    def count(self, session, table):
        return session.execute(text(f"SELECT COUNT(*) FROM {table}")).scalar_one()

    def test_requires_new_commit_survives_outer_rollback(self, engine, row_count):
        tm = TransactionManager(batis_session_factory(engine))

        def outer():
            with tm.scope(REQUIRES_NEW) as inner:
                inner.execute(text("INSERT INTO audit_log (id, message) VALUES (1, 'attempt')"))
            tm.current_session().execute(text("INSERT INTO users (name) VALUES ('A')"))
            raise RuntimeError("outer failed")

        with pytest.raises(TransactionError):
            tm.execute(REQUIRED, outer)

        assert row_count("audit_log") == 1
        assert row_count("users") == 0

    def test_requires_new_failure_keeps_outer_work(self, engine, row_count):
        tm = TransactionManager(batis_session_factory(engine))

        def inner():
            tm.current_session().execute(text("INSERT INTO audit_log (id, message) VALUES (1, 'x')"))
            raise RuntimeError("inner failed")

        def outer():
            with pytest.raises(TransactionError):
                tm.execute(REQUIRES_NEW, inner)
            tm.current_session().execute(text("INSERT INTO users (name) VALUES ('A')"))

        tm.execute(REQUIRED, outer)

        assert row_count("audit_log") == 0
        assert row_count("users") == 1

    def test_requires_new_does_not_see_uncommitted_outer_rows(self, engine):
        tm = TransactionManager(batis_session_factory(engine))
        counts = {}

        def outer():
            session = tm.current_session()
            session.execute(text("INSERT INTO users (name) VALUES ('A')"))
            counts["outer"] = self.count(session, "users")
            counts["inner"] = tm.execute(REQUIRES_NEW, lambda: self.count(tm.current_session(), "users"))

        tm.execute(REQUIRED, outer)
        assert counts == {"outer": 1, "inner": 0}
