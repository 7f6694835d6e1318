"""
Transaction propagation over physical database sessions.

Manifesto:
    A logical unit of work either commits completely or not at all, and
    nested units decide whether they share that outcome:

    - **REQUIRED** joins the session already active on the call chain,
      or opens one and owns it
    - **REQUIRES_NEW** suspends whatever is active, owns a fresh session,
      and restores the suspended one on every exit path
    - **Only owners** commit, roll back and close; participants leave the
      outcome to the owner

Architecture:
    ::

        manager.execute(REQUIRED, op_a)          ← ACTIVE_OWNER   (session S1)
          └─ manager.execute(REQUIRED, op_b)     ← ACTIVE_PARTICIPANT (S1)
               └─ manager.execute(REQUIRES_NEW, op_c)
                                                 ← ACTIVE_OWNER   (session S2)
                                                   S1 suspended, restored after

        owner exit paths:
          success            → commit, close
          BatisError         → rollback, close, re-raise unchanged
          any other failure  → rollback, close, raise TransactionError(cause)
          commit failure     → rollback, close, raise TransactionError(cause)

    The active context lives in a ``ContextVar`` owned by the manager, so
    each thread (and each asyncio task) sees its own call chain.

Examples:
    >>> tm = TransactionManager(batis_session_factory(engine))
    >>> def work():
    ...     tm.current_session().execute(text("INSERT INTO t VALUES (1)"))
    >>> tm.execute(Propagation.REQUIRED, work)
    >>> with tm.scope(Propagation.REQUIRES_NEW) as session:
    ...     session.execute(text("INSERT INTO audit VALUES ('x')"))

Guardrails:
    ❌ DON'T: Share a session between threads or call chains
    ✅ DO: Let each chain obtain its session from the manager

    ❌ DON'T: Commit or roll back the yielded session yourself
    ✅ DO: Raise to roll back, return normally to commit

Tags:
    transaction, propagation, requires-new, contextvars, seasarbatis
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import TypeVar

from sqlalchemy.orm import Session

from seasarbatis.core.enums import Propagation, TransactionState
from seasarbatis.core.errors import TransactionError, is_domain_error
from seasarbatis.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def _tx_id() -> str:
    return uuid.uuid4().hex[:8]


@dataclass
class TransactionContext:
    """The active physical session of a call chain."""

    session: Session
    propagation: Propagation
    tx_id: str = field(default_factory=_tx_id)
    # number of REQUIRED calls currently joined to this session
    depth: int = 0


class TransactionManager:
    """Runs units of work with REQUIRED / REQUIRES_NEW propagation.

    Parameters:
        session_factory: zero-argument callable returning a new physical
            session (normally a ``sessionmaker``).
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory
        self._current: ContextVar[TransactionContext | None] = ContextVar(
            f"seasarbatis_tx_{id(self):x}", default=None
        )

    # -- Introspection -----------------------------------------------------

    def current_context(self) -> TransactionContext | None:
        return self._current.get()

    def current_session(self) -> Session | None:
        """Session of the active transaction, or ``None`` outside one."""
        ctx = self._current.get()
        return ctx.session if ctx is not None else None

    def current_state(self) -> TransactionState:
        ctx = self._current.get()
        if ctx is None:
            return TransactionState.NO_ACTIVE_SESSION
        if ctx.depth > 0:
            return TransactionState.ACTIVE_PARTICIPANT
        return TransactionState.ACTIVE_OWNER

    @property
    def depth(self) -> int:
        """Nesting depth of the active call chain (0 outside a transaction)."""
        ctx = self._current.get()
        return 0 if ctx is None else ctx.depth + 1

    # -- Units of work -----------------------------------------------------

    def execute(self, propagation: Propagation, operation: Callable[[], T]) -> T:
        """Run ``operation`` inside a transaction with the given propagation."""
        with self.scope(propagation):
            return operation()

    @contextmanager
    def scope(self, propagation: Propagation = Propagation.REQUIRED) -> Iterator[Session]:
        """Context-manager form of :meth:`execute`; yields the session in use."""
        active = self._current.get()

        if propagation is Propagation.REQUIRED and active is not None:
            active.depth += 1
            try:
                yield active.session
            finally:
                active.depth -= 1
            return

        session = self._session_factory()
        ctx = TransactionContext(session=session, propagation=propagation)
        token = self._current.set(ctx)
        logger.debug(
            "transaction_begin",
            tx_id=ctx.tx_id,
            propagation=propagation.value,
            suspended=active.tx_id if active is not None else None,
        )
        try:
            try:
                yield session
            except BaseException as exc:
                self._rollback(ctx, exc)
                if isinstance(exc, Exception) and not is_domain_error(exc):
                    raise TransactionError(
                        f"Transaction {ctx.tx_id} rolled back: {exc}",
                        cause=exc,
                        tx_id=ctx.tx_id,
                        propagation=propagation.value,
                    ) from exc
                raise

            try:
                session.commit()
            except Exception as exc:
                self._rollback(ctx, exc)
                raise TransactionError(
                    f"Commit of transaction {ctx.tx_id} failed: {exc}",
                    cause=exc,
                    tx_id=ctx.tx_id,
                    propagation=propagation.value,
                ) from exc
            logger.debug("transaction_commit", tx_id=ctx.tx_id)
        finally:
            self._close(ctx)
            self._current.reset(token)
            if active is not None:
                logger.debug("transaction_resumed", tx_id=active.tx_id, after=ctx.tx_id)

    # -- Internals ---------------------------------------------------------

    def _rollback(self, ctx: TransactionContext, cause: BaseException) -> None:
        try:
            ctx.session.rollback()
        except Exception as exc:
            logger.error(
                "transaction_rollback_failed",
                tx_id=ctx.tx_id,
                error=str(exc),
                original_error=str(cause),
            )
            return
        logger.debug(
            "transaction_rollback",
            tx_id=ctx.tx_id,
            error_type=type(cause).__name__,
        )

    def _close(self, ctx: TransactionContext) -> None:
        try:
            ctx.session.close()
        except Exception as exc:
            logger.warning("transaction_close_failed", tx_id=ctx.tx_id, error=str(exc))


__all__ = [
    "TransactionContext",
    "TransactionManager",
]
