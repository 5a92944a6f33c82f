"""Transaction scopes.

A :class:`TransactionScope` offers the full Session surface (collections,
builders, raw statements, ``save``/``delete``) on one pinned connection, so
everything issued through it shares the transaction::

    def transfer(tx):
        accounts = tx.collection("accounts")
        accounts.find(1).update({"balance": 50})
        accounts.find(2).update({"balance": 150})

    sess.tx(transfer)              # commit on return, rollback on raise

Nesting: ``scope.tx(fn)`` opens a SAVEPOINT; a failing inner function rolls
back to it without aborting the outer transaction.  While an inner scope is
active its parent refuses statements, and a finished scope refuses
everything (``TransactionError``).  Handles bound to another session raise
``ScopeError`` when passed to :meth:`TransactionScope.bind`.
"""

from __future__ import annotations

import dataclasses
import weakref
from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum
from typing import TYPE_CHECKING, Any

from rowspine.core.errors import (
    CancelledError,
    ScopeError,
    SpineError,
    TransactionError,
    attach_rollback_error,
)
from rowspine.core.protocols import DBAPIConnection
from rowspine.db.base import BaseSession
from rowspine.db.collection import Collection

if TYPE_CHECKING:
    from rowspine.db.context import Context
    from rowspine.db.cursor import Cursor
    from rowspine.db.session import Session


class ScopeState(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class TransactionScope(BaseSession):
    """Session-like handle bound to one transaction (or savepoint)."""

    def __init__(
        self,
        session: Session,
        conn: DBAPIConnection,
        ctx: Context | None = None,
        *,
        parent: TransactionScope | None = None,
    ):
        self._session = session
        self.adapter = session.adapter
        self.mapper = session.mapper
        self._log = session._log
        self._echo = session._echo
        self._conn = conn
        self._ctx = ctx
        self._parent = parent
        self._depth = parent._depth + 1 if parent is not None else 0
        self._state = ScopeState.PENDING
        self._child: TransactionScope | None = None
        self._cursors: weakref.WeakSet[Cursor] = weakref.WeakSet()
        self.rollback_failed = False

    @property
    def session(self) -> Session:
        return self._session

    @property
    def in_transaction(self) -> bool:
        return True

    @property
    def state(self) -> ScopeState:
        return self._state

    @property
    def depth(self) -> int:
        """0 for the outer transaction, n for the n-th nested savepoint."""
        return self._depth

    @property
    def savepoint(self) -> str | None:
        return f"rowspine_sp_{self._depth}" if self._depth else None

    @property
    def ctx(self) -> Context | None:
        return self._ctx

    def __repr__(self) -> str:
        return f"TransactionScope(depth={self._depth}, state={self._state.value})"

    # -- Connection source -------------------------------------------------

    def _acquire(self) -> DBAPIConnection:
        if self._state is not ScopeState.ACTIVE:
            raise TransactionError(
                f"transaction scope is {self._state.value}; it cannot run more statements"
            )
        if self._child is not None:
            raise ScopeError("an inner transaction scope is active; use its handle")
        if self._ctx is not None:
            self._ctx.check()
        return self._conn

    def _release(self, conn: DBAPIConnection) -> None:
        # The pinned connection goes back to the pool when the outer scope ends
        pass

    def _default_ctx(self, ctx: Context | None) -> Context | None:
        return ctx if ctx is not None else self._ctx

    def _track(self, cursor: Cursor) -> None:
        self._cursors.add(cursor)

    def _close_cursors(self) -> None:
        for cursor in list(self._cursors):
            cursor.close()

    # -- Handle binding ----------------------------------------------------

    def bind(self, obj: Any) -> Any:
        """Rebind a Collection or query built on this scope's session.

        Raises:
            ScopeError: ``obj`` belongs to a different session
        """
        handle = obj.handle
        if handle is self:
            return obj
        if handle is None or handle.session is not self._session:
            raise ScopeError(f"{obj!r} belongs to a different session")
        if isinstance(obj, Collection):
            return Collection(self, obj.name)
        changes: dict[str, Any] = {"handle": self}
        if getattr(obj, "collection", None) is not None:
            changes["collection"] = Collection(self, obj.collection.name)
        return dataclasses.replace(obj, **changes)

    def collection(self, name: str | Collection) -> Collection:
        if isinstance(name, Collection):
            return self.bind(name)
        return super().collection(name)

    # -- Lifecycle ---------------------------------------------------------

    def _driver_errors(self) -> tuple[type[BaseException], ...]:
        return (SpineError, *self.adapter.driver_errors)

    def _begin(self) -> None:
        if self._ctx is not None:
            self._ctx.check()
        try:
            if self.savepoint:
                self.adapter.savepoint(self._conn, self.savepoint)
            else:
                self.adapter.begin(self._conn)
        except self._driver_errors() as e:
            raise TransactionError(f"begin failed: {e}", cause=e).with_context(
                operation="begin", backend=self.adapter.backend
            ) from e
        self._state = ScopeState.ACTIVE
        self._log.debug("transaction_begin", depth=self._depth)

    def _commit(self) -> None:
        self._close_cursors()
        if self._ctx is not None and self._ctx.cancelled:
            error: CancelledError = self._ctx.err()  # type: ignore[assignment]
            self._rollback(error)
            raise error
        try:
            if self.savepoint:
                self.adapter.release_savepoint(self._conn, self.savepoint)
            else:
                self.adapter.commit(self._conn)
        except self._driver_errors() as e:
            failure = TransactionError(f"commit failed: {e}", cause=e).with_context(
                operation="commit", backend=self.adapter.backend
            )
            self._rollback(failure)
            raise failure from e
        self._state = ScopeState.COMMITTED
        self._log.debug("transaction_commit", depth=self._depth)

    def _rollback(self, error: BaseException) -> None:
        """Roll back because of ``error``; a rollback failure is attached to it."""
        self._close_cursors()
        try:
            if self.savepoint:
                self.adapter.rollback_to_savepoint(self._conn, self.savepoint)
                self.adapter.release_savepoint(self._conn, self.savepoint)
            else:
                self.adapter.rollback(self._conn)
        except self._driver_errors() as rb:
            self.rollback_failed = True
            attach_rollback_error(error, rb)
            self._log.warning("transaction_rollback_failed", depth=self._depth, error=str(rb))
        finally:
            self._state = ScopeState.ROLLED_BACK
        self._log.debug("transaction_rollback", depth=self._depth, reason=type(error).__name__)

    @contextmanager
    def transaction(self, ctx: Context | None = None) -> Iterator[TransactionScope]:
        """Nested scope backed by a SAVEPOINT."""
        self._acquire()
        child = TransactionScope(
            self._session,
            self._conn,
            ctx if ctx is not None else self._ctx,
            parent=self,
        )
        child._begin()
        self._child = child
        try:
            try:
                yield child
            except BaseException as e:
                child._rollback(e)
                raise
            else:
                child._commit()
        finally:
            self._child = None


__all__ = ["ScopeState", "TransactionScope"]
