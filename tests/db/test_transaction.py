"""Tests for ``rowspine.db.transaction``."""

from __future__ import annotations

import sqlite3

import pytest

import rowspine
from rowspine.core.errors import (
    CancelledError,
    DeadlineExceededError,
    ScopeError,
    TransactionError,
)
from rowspine.db.context import Context
from rowspine.db.transaction import ScopeState, TransactionScope
from tests._support.records import Book


def count_books(handle) -> int:
    return handle.collection("books").count()


def in_use(session) -> int:
    return session.adapter._pool.in_use


class TestFunctionScope:
    def test_commit(self, session):
        def add(tx):
            tx.collection("books").insert(Book(title="Dune Messiah", author_id=1))

        session.tx(add)
        assert count_books(session) == 4
        assert in_use(session) == 0

    def test_return_value(self, session):
        assert session.tx(count_books) == 3

    def test_failure_rolls_back(self, session):
        def failing(tx):
            tx.collection("books").insert(Book(title="Ghost"))
            tx.update("books").set("title", "Overwritten").exec()
            raise RuntimeError("abort")

        with pytest.raises(RuntimeError, match="abort"):
            session.tx(failing)
        assert count_books(session) == 3
        assert session.get(Book, 1).title == "Dune"
        assert in_use(session) == 0

    def test_scope_surface(self, session):
        def work(tx):
            assert isinstance(tx, TransactionScope)
            assert tx.in_transaction
            assert tx.session is session
            assert tx.dialect.name == "sqlite"
            tx.save(Book(title="Chapterhouse", author_id=1))
            tx.exec("DELETE FROM books WHERE id = ?", 2)
            return [b.title for b in tx.select_from("books").order_by("id").all(Book)]

        titles = session.tx(work)
        assert titles == ["Dune", "Practical PostgreSQL", "Chapterhouse"]
        assert count_books(session) == 3


class TestContextManagerScope:
    def test_commit(self, session):
        with session.transaction() as tx:
            assert tx.state is ScopeState.ACTIVE
            tx.collection("books").find(1).update({"title": "Dune!"})
        assert tx.state is ScopeState.COMMITTED
        assert session.get(Book, 1).title == "Dune!"

    def test_rollback(self, session):
        with pytest.raises(ValueError):
            with session.transaction() as tx:
                tx.collection("books").find(1).delete()
                raise ValueError("nope")
        assert tx.state is ScopeState.ROLLED_BACK
        assert count_books(session) == 3

    def test_finished_scope_is_refused(self, session):
        with session.transaction() as tx:
            pass
        with pytest.raises(TransactionError, match="committed"):
            tx.exec("DELETE FROM books")
        with pytest.raises(TransactionError):
            count_books(tx)
        assert count_books(session) == 3

    def test_cursors_close_with_scope(self, session):
        with session.transaction() as tx:
            cursor = tx.query("SELECT * FROM books")
            assert cursor.next() is not None
        assert cursor.closed
        assert in_use(session) == 0

    def test_repr(self, session):
        with session.transaction() as tx:
            assert repr(tx) == "TransactionScope(depth=0, state=active)"


class TestNesting:
    def test_savepoint_names(self, session):
        with session.transaction() as tx:
            assert tx.depth == 0
            assert tx.savepoint is None
            with tx.transaction() as inner:
                assert inner.depth == 1
                assert inner.savepoint == "rowspine_sp_1"
                with inner.transaction() as innermost:
                    assert innermost.savepoint == "rowspine_sp_2"

    def test_inner_rollback_keeps_outer(self, session):
        def inner(tx):
            tx.collection("books").insert(Book(title="Dropped"))
            raise RuntimeError("inner abort")

        def outer(tx):
            tx.collection("books").insert(Book(title="Kept"))
            with pytest.raises(RuntimeError):
                tx.tx(inner)
            return count_books(tx)

        assert session.tx(outer) == 4
        titles = {b.title for b in session.select_from("books").all(Book)}
        assert "Kept" in titles
        assert "Dropped" not in titles

    def test_inner_commit_joins_outer(self, session):
        with session.transaction() as tx:
            tx.tx(lambda inner: inner.collection("books").insert(Book(title="Nested")))
            assert count_books(tx) == 4
        assert count_books(session) == 4

    def test_outer_rollback_discards_inner(self, session):
        with pytest.raises(RuntimeError):
            with session.transaction() as tx:
                with tx.transaction() as inner:
                    inner.collection("books").insert(Book(title="Nested"))
                raise RuntimeError("outer abort")
        assert count_books(session) == 3

    def test_parent_blocked_while_child_active(self, session):
        with session.transaction() as tx:
            with tx.transaction() as inner:
                with pytest.raises(ScopeError):
                    tx.exec("DELETE FROM books")
                assert count_books(inner) == 3
            assert count_books(tx) == 3


class TestBinding:
    def test_bind_collection(self, session):
        books = session.collection("books")
        with session.transaction() as tx:
            bound = tx.bind(books)
            assert bound.handle is tx
            assert tx.collection(books) == bound
            bound.find(1).delete()
            assert bound.count() == 2
        assert count_books(session) == 2

    def test_bind_query(self, session):
        query = session.collection("books").find("title LIKE", "P%")
        with session.transaction() as tx:
            bound = tx.bind(query)
            assert bound.handle is tx
            assert bound.collection.handle is tx
            assert bound.delete().rows_affected == 2
        assert count_books(session) == 1

    def test_bound_handle_is_returned_unchanged(self, session):
        with session.transaction() as tx:
            books = tx.collection("books")
            assert tx.bind(books) is books

    def test_other_session_is_refused(self, session, db_url):
        with rowspine.open(db_url) as other:
            with session.transaction() as tx:
                with pytest.raises(ScopeError, match="different session"):
                    tx.bind(other.collection("books"))


class TestCancellation:
    def test_cancelled_before_commit(self, session):
        ctx = Context()
        with pytest.raises(CancelledError):
            with session.transaction(ctx) as tx:
                tx.collection("books").insert(Book(title="Ghost"))
                ctx.cancel()
        assert tx.state is ScopeState.ROLLED_BACK
        assert count_books(session) == 3
        assert in_use(session) == 0

    def test_cancelled_statement(self, session):
        ctx = Context()

        def work(tx):
            tx.collection("books").insert(Book(title="Ghost"))
            ctx.cancel()
            tx.collection("books").insert(Book(title="Never"))

        with pytest.raises(CancelledError):
            session.tx(work, ctx=ctx)
        assert count_books(session) == 3

    def test_expired_before_begin(self, session):
        with pytest.raises(DeadlineExceededError):
            session.tx(count_books, ctx=Context.with_timeout(0))
        assert in_use(session) == 0


class TestFailures:
    def test_begin_failure(self, session, monkeypatch):
        def broken(conn):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(session.adapter, "begin", broken)
        with pytest.raises(TransactionError, match="begin failed") as exc:
            session.tx(count_books)
        assert isinstance(exc.value.cause, sqlite3.OperationalError)
        assert in_use(session) == 0

    def test_commit_failure_rolls_back(self, session, monkeypatch):
        def broken(conn):
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(session.adapter, "commit", broken)
        with pytest.raises(TransactionError, match="commit failed"):
            session.tx(lambda tx: tx.collection("books").insert(Book(title="Ghost")))
        monkeypatch.undo()
        assert count_books(session) == 3
        assert in_use(session) == 0

    def test_rollback_failure_is_attached(self, session, monkeypatch):
        def broken(conn):
            raise sqlite3.OperationalError("rollback exploded")

        def failing(tx):
            tx.collection("books").insert(Book(title="Ghost"))
            raise RuntimeError("abort")

        monkeypatch.setattr(session.adapter, "rollback", broken)
        with pytest.raises(RuntimeError) as exc:
            session.tx(failing)
        assert isinstance(exc.value.rollback_error, sqlite3.OperationalError)
        assert any("rollback failed" in note for note in exc.value.__notes__)
        monkeypatch.undo()
        # The connection was discarded, taking the open transaction with it
        assert session.adapter._pool.size == session.adapter._pool.idle
        assert count_books(session) == 3
