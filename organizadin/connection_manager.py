"""
OrganizaDin Connection Manager
Owns the single SQLite handle: opens it lazily, configures the engine and
reconnects once when the native handle dies.
"""

import logging
import os
import sqlite3
import threading
from contextlib import contextmanager
from enum import Enum
from typing import Callable, Iterator, Optional, TypeVar

from organizadin.config import DB_PATH

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Substrings of driver error text that mean the handle is gone.
# This is the only place error text is pattern-matched.
CONNECTION_FAULT_SIGNATURES = (
    "cannot operate on a closed database",
    "nullpointerexception",
    "database connection is closed",
    "native database",
    "connection has been released",
)


class DatabaseError(Exception):
    """Base Exception for database operations"""
    pass


class ConnectionFaultError(DatabaseError):
    """Raised by a driver layer that can tell a dead handle from a bad statement"""
    pass


class HandleState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    FAULTED = "faulted"


def is_connection_fault(error: BaseException) -> bool:
    """
    Classify an error as a dead-connection fault.

    Returns:
        True for ConnectionFaultError or a sqlite3.Error carrying a known
        dead-handle signature, False for everything else (statement errors,
        constraint violations, programming mistakes)
    """
    if isinstance(error, ConnectionFaultError):
        return True
    if not isinstance(error, sqlite3.Error):
        return False
    message = str(error).lower()
    return any(signature in message for signature in CONNECTION_FAULT_SIGNATURES)


class ConnectionManager:
    """
    Exclusive owner of the SQLite connection.

    Lifecycle:
        - CLOSED: nothing open, acquire() opens
        - OPEN: acquire() returns the same handle
        - FAULTED: a dead handle was detected, invalidate() returns to CLOSED

    Single-writer: every operation runs under one re-entrant lock.
    Migrations are NOT re-run after a reconnect.
    """

    def __init__(self, db_path: str = DB_PATH):
        """
        Args:
            db_path: Path to SQLite database file (":memory:" allowed)
        """
        self.db_path = db_path
        self.connection: Optional[sqlite3.Connection] = None
        self.state = HandleState.CLOSED
        self._lock = threading.RLock()
        self._in_transaction = False

    def acquire(self) -> sqlite3.Connection:
        """
        Create or return the existing database connection.

        Returns:
            SQLite connection in autocommit mode with Row factory,
            foreign keys ON and WAL journaling (DELETE as fallback)
        """
        with self._lock:
            if self.connection is not None and self.state == HandleState.OPEN:
                return self.connection

            if self.db_path != ":memory:":
                directory = os.path.dirname(os.path.abspath(self.db_path))
                os.makedirs(directory, exist_ok=True)

            connection = sqlite3.connect(
                self.db_path, isolation_level=None, check_same_thread=False
            )
            try:
                self._configure(connection)
            except Exception:
                connection.close()
                raise

            self.connection = connection
            self.state = HandleState.OPEN
            logger.debug("Opened database at %s", self.db_path)
            return connection

    @staticmethod
    def _configure(connection: sqlite3.Connection) -> None:
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON")

        res = connection.execute("PRAGMA journal_mode=WAL;").fetchone()
        actual_mode = res[0].lower() if res else None
        if actual_mode in ("wal", "memory"):
            return

        res = connection.execute("PRAGMA journal_mode=DELETE;").fetchone()
        fallback_mode = res[0].lower() if res else None
        if fallback_mode != "delete":
            raise DatabaseError(
                f"SQLite journaling misconfigured: WAL unsupported and DELETE fallback failed (mode={fallback_mode})"
            )
        logger.warning("WAL journaling unavailable, using DELETE mode")

    def invalidate(self) -> None:
        """
        Discard the handle so the next acquire() reopens from scratch.
        Close errors are ignored: the handle is being thrown away.
        """
        with self._lock:
            if self.connection is not None:
                try:
                    self.connection.close()
                except Exception as e:
                    logger.debug("Ignoring close failure on discarded handle: %s", e)
            self.connection = None
            self.state = HandleState.CLOSED
            self._in_transaction = False

    def close(self) -> None:
        """Close the database connection"""
        with self._lock:
            if self.connection is not None:
                try:
                    self.connection.close()
                finally:
                    self.connection = None
                    self.state = HandleState.CLOSED
                    self._in_transaction = False

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    def run(self, operation: Callable[[sqlite3.Connection], T]) -> T:
        """
        Run one engine call with a single reconnect on a dead handle.

        Args:
            operation: Callable receiving the live connection

        Returns:
            Whatever operation returns

        Raises:
            The original error when it is not a connection fault, when it
            happens inside a transaction, or when the one retry also fails
        """
        with self._lock:
            try:
                return operation(self.acquire())
            except (sqlite3.Error, ConnectionFaultError) as e:
                if self._in_transaction or not is_connection_fault(e):
                    raise
                logger.warning("Database handle faulted (%s), reconnecting once", e)
                self.state = HandleState.FAULTED
                self.invalidate()

            return operation(self.acquire())

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        BEGIN IMMEDIATE ... COMMIT, rolling back on any exception.
        Nested use joins the outer transaction.
        """
        with self._lock:
            conn = self.acquire()
            if self._in_transaction:
                yield conn
                return

            conn.execute("BEGIN IMMEDIATE")
            self._in_transaction = True
            try:
                yield conn
            except BaseException:
                try:
                    conn.execute("ROLLBACK")
                finally:
                    self._in_transaction = False
                raise
            else:
                try:
                    conn.execute("COMMIT")
                finally:
                    self._in_transaction = False
