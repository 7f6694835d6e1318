"""SQLAlchemy engine factory and physical-session factory.

This module provides:

* ``create_batis_engine``   -- Create a SA engine from a URL with sane defaults.
* ``BatisSession``          -- ``Session`` subclass with ``expire_on_commit=False``.
* ``batis_session_factory`` -- ``sessionmaker`` producing ``BatisSession``.

The transaction manager opens exactly one ``BatisSession`` per owned
transaction; everything executed inside the unit of work goes through
that session.

Tags:
    seasarbatis, sqlalchemy, session, engine
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import create_engine as _sa_create_engine
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from seasarbatis.core.settings import BatisSettings


def create_batis_engine(
    url: str = "sqlite:///seasarbatis.db",
    *,
    echo: bool = False,
    pool_size: int | None = None,
    max_overflow: int | None = None,
    pool_timeout: int | None = None,
    **kwargs: Any,
) -> Engine:
    """Create a SQLAlchemy engine with sane defaults.

    Parameters
    ----------
    url:
        Database URL (``sqlite:///…``, ``postgresql://…``, etc.)
    echo:
        If ``True``, log all SQL through SQLAlchemy's logger.
    pool_size, max_overflow, pool_timeout:
        Connection pool parameters (ignored for SQLite).
    **kwargs:
        Extra arguments forwarded to ``sqlalchemy.create_engine``.
    """
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        engine = _sa_create_engine(url, echo=echo, **kwargs)

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
            cursor = dbapi_connection.cursor()
            if ":memory:" not in url and url not in ("sqlite://", "sqlite:///"):
                cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    pool_kwargs: dict[str, Any] = {}
    if pool_size is not None:
        pool_kwargs["pool_size"] = pool_size
    if max_overflow is not None:
        pool_kwargs["max_overflow"] = max_overflow
    if pool_timeout is not None:
        pool_kwargs["pool_timeout"] = pool_timeout

    return _sa_create_engine(url, echo=echo, **pool_kwargs, **kwargs)


def engine_from_settings(settings: BatisSettings) -> Engine:
    """Build an engine from :class:`BatisSettings`."""
    return create_batis_engine(
        settings.database_url,
        echo=settings.echo,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
        pool_timeout=settings.pool_timeout,
    )


class BatisSession(Session):
    """Pre-configured session with ``expire_on_commit=False``.

    Objects re-selected inside a unit of work stay readable after the
    owning transaction commits and closes the session.
    """

    def __init__(self, bind: Engine | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("expire_on_commit", False)
        super().__init__(bind=bind, **kwargs)


def batis_session_factory(engine: Engine) -> sessionmaker[BatisSession]:
    """Return a ``sessionmaker`` bound to *engine* that produces ``BatisSession`` instances."""
    return sessionmaker(bind=engine, class_=BatisSession)


__all__ = [
    "create_batis_engine",
    "engine_from_settings",
    "BatisSession",
    "batis_session_factory",
]
