"""
tests/test_connection_manager.py
Connection lifecycle, engine configuration and the single reconnect.
"""

import sqlite3

import pytest
from unittest.mock import MagicMock, patch

from organizadin.connection_manager import (
    ConnectionFaultError,
    ConnectionManager,
    HandleState,
    is_connection_fault,
)

CLOSED_HANDLE = "Cannot operate on a closed database."


@pytest.fixture
def manager(db_path):
    m = ConnectionManager(db_path)
    yield m
    m.close()


# ---------------------------------------------------------------------------
# Fault classification
# ---------------------------------------------------------------------------

class TestFaultClassification:
    def test_closed_handle_message_is_fault(self):
        assert is_connection_fault(sqlite3.ProgrammingError(CLOSED_HANDLE)) is True

    def test_explicit_fault_type(self):
        assert is_connection_fault(ConnectionFaultError("gone")) is True

    def test_constraint_violation_is_not_fault(self):
        assert is_connection_fault(sqlite3.IntegrityError("NOT NULL constraint failed")) is False

    def test_syntax_error_is_not_fault(self):
        assert is_connection_fault(sqlite3.OperationalError('near "SELEC": syntax error')) is False

    def test_non_database_error_is_not_fault(self):
        assert is_connection_fault(RuntimeError(CLOSED_HANDLE)) is False


# ---------------------------------------------------------------------------
# acquire / configuration
# ---------------------------------------------------------------------------

class TestAcquire:
    def test_acquire_is_idempotent(self, manager):
        first = manager.acquire()
        assert manager.acquire() is first
        assert manager.state == HandleState.OPEN

    def test_foreign_keys_enabled(self, manager):
        conn = manager.acquire()
        assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1

    def test_wal_journaling(self, manager):
        conn = manager.acquire()
        assert conn.execute("PRAGMA journal_mode").fetchone()[0].lower() == "wal"

    def test_row_factory(self, manager):
        row = manager.acquire().execute("SELECT 1 AS one").fetchone()
        assert row["one"] == 1

    def test_creates_parent_directory(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "app.db"
        m = ConnectionManager(str(path))
        m.acquire()
        m.close()
        assert path.exists()

    def test_in_memory_database(self):
        m = ConnectionManager(":memory:")
        assert m.acquire().execute("SELECT 2").fetchone()[0] == 2
        m.close()

    def test_close_returns_to_closed(self, manager):
        manager.acquire()
        manager.close()
        assert manager.connection is None
        assert manager.state == HandleState.CLOSED

    def test_invalidate_ignores_close_errors(self, manager):
        broken = MagicMock()
        broken.close.side_effect = sqlite3.ProgrammingError("boom")
        manager.connection = broken
        manager.state = HandleState.OPEN
        manager.invalidate()
        assert manager.connection is None
        assert manager.state == HandleState.CLOSED


# ---------------------------------------------------------------------------
# run(): reconnect once
# ---------------------------------------------------------------------------

class TestReconnect:
    def test_success_does_not_invalidate(self, manager):
        with patch.object(manager, "invalidate", wraps=manager.invalidate) as invalidate:
            assert manager.run(lambda conn: conn.execute("SELECT 1").fetchone()[0]) == 1
        invalidate.assert_not_called()

    def test_fault_then_success_reconnects_once(self, manager):
        calls = []

        def operation(conn):
            calls.append(conn)
            if len(calls) == 1:
                raise sqlite3.ProgrammingError(CLOSED_HANDLE)
            return "ok"

        manager.acquire()
        with patch.object(manager, "invalidate", wraps=manager.invalidate) as invalidate:
            assert manager.run(operation) == "ok"
        assert invalidate.call_count == 1
        assert len(calls) == 2
        assert calls[0] is not calls[1]

    def test_persistent_fault_surfaces_after_one_retry(self, manager):
        operation = MagicMock(side_effect=[
            sqlite3.ProgrammingError(CLOSED_HANDLE),
            sqlite3.ProgrammingError(CLOSED_HANDLE),
        ])
        with patch.object(manager, "invalidate", wraps=manager.invalidate) as invalidate:
            with pytest.raises(sqlite3.ProgrammingError, match="closed database"):
                manager.run(operation)
        assert invalidate.call_count == 1
        assert operation.call_count == 2

    def test_statement_error_is_not_retried(self, manager):
        operation = MagicMock(side_effect=sqlite3.IntegrityError("UNIQUE constraint failed"))
        with patch.object(manager, "invalidate") as invalidate:
            with pytest.raises(sqlite3.IntegrityError):
                manager.run(operation)
        invalidate.assert_not_called()
        assert operation.call_count == 1

    def test_fault_inside_transaction_is_not_retried(self, manager):
        operation = MagicMock(side_effect=sqlite3.ProgrammingError(CLOSED_HANDLE))
        with patch.object(manager, "invalidate") as invalidate:
            with pytest.raises(sqlite3.ProgrammingError):
                with manager.transaction():
                    manager.run(operation)
        invalidate.assert_not_called()
        assert operation.call_count == 1

    def test_reconnect_after_external_close(self, manager):
        manager.acquire().close()
        assert manager.run(lambda conn: conn.execute("SELECT 5").fetchone()[0]) == 5
        assert manager.state == HandleState.OPEN


# ---------------------------------------------------------------------------
# transaction()
# ---------------------------------------------------------------------------

class TestTransaction:
    def _setup_table(self, manager):
        manager.run(lambda conn: conn.execute("CREATE TABLE t (v INTEGER NOT NULL)"))

    def test_commit(self, manager):
        self._setup_table(manager)
        with manager.transaction() as conn:
            conn.execute("INSERT INTO t VALUES (1)")
            assert manager.in_transaction is True
        assert manager.in_transaction is False
        assert manager.run(lambda c: c.execute("SELECT COUNT(*) FROM t").fetchone()[0]) == 1

    def test_rollback_on_error(self, manager):
        self._setup_table(manager)
        with pytest.raises(ValueError):
            with manager.transaction() as conn:
                conn.execute("INSERT INTO t VALUES (1)")
                raise ValueError("abort")
        assert manager.in_transaction is False
        assert manager.run(lambda c: c.execute("SELECT COUNT(*) FROM t").fetchone()[0]) == 0

    def test_nested_transaction_joins_outer(self, manager):
        self._setup_table(manager)
        with pytest.raises(RuntimeError):
            with manager.transaction() as conn:
                conn.execute("INSERT INTO t VALUES (1)")
                with manager.transaction() as inner:
                    inner.execute("INSERT INTO t VALUES (2)")
                raise RuntimeError("abort outer")
        assert manager.run(lambda c: c.execute("SELECT COUNT(*) FROM t").fetchone()[0]) == 0
