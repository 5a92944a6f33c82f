"""Tests for ``rowspine.core.adapters.sqlite`` and the shared pool."""

from __future__ import annotations

import sqlite3
import time

import pytest

from rowspine.core.adapters.base import ConnectionPool
from rowspine.core.adapters.sqlite import SQLiteAdapter
from rowspine.core.connection import ConnectionSettings
from rowspine.core.errors import (
    CancelledError,
    DatabaseConnectionError,
    DeadlineExceededError,
    IntegrityError,
    QueryError,
    SessionClosedError,
)
from rowspine.db.context import Context


def _adapter(url: str = "sqlite:///:memory:") -> SQLiteAdapter:
    return SQLiteAdapter(ConnectionSettings.parse(url))


class TestConnectionPool:
    def test_reuses_connections(self):
        created = []

        def factory():
            created.append(object())
            return created[-1]

        pool = ConnectionPool(factory, max_size=2, on_close=lambda c: None)
        first = pool.get()
        pool.put(first)
        assert pool.get() is first
        assert len(created) == 1

    def test_counts(self):
        pool = ConnectionPool(object, max_size=3, on_close=lambda c: None)
        a, b = pool.get(), pool.get()
        assert pool.in_use == 2
        pool.put(a)
        assert pool.idle == 1
        assert pool.size == 2
        pool.put(b)

    def test_exhausted_pool_times_out(self):
        pool = ConnectionPool(object, max_size=1, timeout=0.05, on_close=lambda c: None)
        pool.get()
        with pytest.raises(DatabaseConnectionError, match="timed out"):
            pool.get()

    def test_discard_closes(self):
        closed = []
        pool = ConnectionPool(object, max_size=1, on_close=closed.append)
        conn = pool.get()
        pool.put(conn, discard=True)
        assert closed == [conn]
        assert pool.idle == 0

    def test_factory_failure_frees_slot(self):
        def factory():
            raise DatabaseConnectionError("down")

        pool = ConnectionPool(factory, max_size=1, timeout=0.05)
        for _ in range(2):
            with pytest.raises(DatabaseConnectionError, match="down"):
                pool.get()

    def test_closed_pool(self):
        closed = []
        pool = ConnectionPool(object, max_size=2, on_close=closed.append)
        conn = pool.get()
        pool.put(conn)
        pool.close()
        assert closed == [conn]
        with pytest.raises(SessionClosedError):
            pool.get()


class TestSQLiteAdapterConnect:
    def test_memory_connections_share_data(self):
        adapter = _adapter()
        a = adapter.acquire()
        b = adapter.acquire()
        a.execute("CREATE TABLE t (x INTEGER)")
        a.execute("INSERT INTO t VALUES (1)")
        assert b.execute("SELECT x FROM t").fetchall() == [(1,)]
        adapter.release(a)
        adapter.release(b)
        adapter.close()

    def test_separate_memory_adapters_are_isolated(self):
        one, two = _adapter(), _adapter()
        one.acquire().execute("CREATE TABLE t (x INTEGER)")
        conn = two.acquire()
        assert conn.execute("SELECT name FROM sqlite_master").fetchall() == []
        one.close()
        two.close()

    def test_foreign_keys_enabled(self):
        adapter = _adapter()
        with adapter.connection() as conn:
            assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1
        adapter.close()

    def test_file_uses_wal(self, tmp_path):
        adapter = _adapter(f"sqlite:///{tmp_path / 'wal.db'}")
        with adapter.connection() as conn:
            assert conn.execute("PRAGMA journal_mode").fetchone()[0] == "wal"
        adapter.close()

    def test_readonly_option(self, tmp_path):
        path = tmp_path / "ro.db"
        sqlite3.connect(path).close()
        adapter = _adapter(f"sqlite:///{path}?mode=ro")
        assert adapter.readonly
        with adapter.connection() as conn:
            with pytest.raises(QueryError):
                adapter.execute(conn, "CREATE TABLE t (x INTEGER)")
        adapter.close()

    def test_unreachable_path(self, tmp_path):
        adapter = _adapter(f"sqlite:///{tmp_path / 'missing' / 'dir' / 'x.db'}")
        with pytest.raises(DatabaseConnectionError, match="Failed to connect"):
            adapter.acquire()
        adapter.close()

    def test_logs_pool_lifecycle(self):
        from structlog.testing import CapturingLogger

        log = CapturingLogger()
        adapter = SQLiteAdapter(ConnectionSettings.parse("memory"), logger=log)
        adapter.connect()
        adapter.close()
        assert [c.args[0] for c in log.calls] == ["pool_opened", "pool_closed"]


class TestSQLiteAdapterLifecycle:
    def test_close_is_idempotent(self):
        adapter = _adapter()
        adapter.acquire()
        adapter.close()
        adapter.close()
        assert adapter.is_closed

    def test_acquire_after_close(self):
        adapter = _adapter()
        adapter.close()
        with pytest.raises(SessionClosedError):
            adapter.acquire()

    def test_release_rolls_back_open_transaction(self, tmp_path):
        adapter = _adapter(f"sqlite:///{tmp_path / 'rb.db'}")
        conn = adapter.acquire()
        conn.execute("CREATE TABLE t (x INTEGER)")
        conn.execute("BEGIN")
        conn.execute("INSERT INTO t VALUES (1)")
        adapter.release(conn)
        again = adapter.acquire()
        assert again.in_transaction is False
        assert again.execute("SELECT COUNT(*) FROM t").fetchone()[0] == 0
        adapter.release(again)
        adapter.close()

    def test_context_manager(self):
        with _adapter() as adapter:
            assert adapter.is_connected
        assert adapter.is_closed


class TestSQLiteAdapterExecute:
    def test_returns_open_cursor(self):
        adapter = _adapter()
        with adapter.connection() as conn:
            cursor = adapter.execute(conn, "SELECT ? + ?", (1, 2))
            assert cursor.fetchone() == (3,)
            cursor.close()
        adapter.close()

    def test_syntax_error_is_query_error(self):
        adapter = _adapter()
        with adapter.connection() as conn:
            with pytest.raises(QueryError) as exc:
                adapter.execute(conn, "SELEC nonsense")
        err = exc.value
        assert isinstance(err.cause, sqlite3.OperationalError)
        assert err.context.backend == "sqlite"
        assert err.context.sql == "SELEC nonsense"
        adapter.close()

    def test_constraint_violation_is_integrity_error(self):
        adapter = _adapter()
        with adapter.connection() as conn:
            adapter.execute(conn, "CREATE TABLE t (id INTEGER PRIMARY KEY)").close()
            adapter.execute(conn, "INSERT INTO t VALUES (1)").close()
            with pytest.raises(IntegrityError):
                adapter.execute(conn, "INSERT INTO t VALUES (1)")
        adapter.close()

    def test_cancelled_context_runs_nothing(self):
        adapter = _adapter()
        ctx = Context()
        ctx.cancel()
        with adapter.connection() as conn:
            with pytest.raises(CancelledError):
                adapter.execute(conn, "SELECT 1", (), ctx)
        adapter.close()

    def test_deadline_interrupts_running_statement(self):
        adapter = _adapter()
        ctx = Context.with_timeout(0.05)
        endless = (
            "WITH RECURSIVE c(x) AS (SELECT 1 UNION ALL SELECT x + 1 FROM c WHERE x < 1000000000) "
            "SELECT COUNT(*) FROM c"
        )
        started = time.monotonic()
        with adapter.connection() as conn:
            with pytest.raises(DeadlineExceededError):
                adapter.execute(conn, endless, (), ctx)
        assert time.monotonic() - started < 30
        adapter.close()
