"""
OrganizaDin Secure Database
The only sanctioned read/write path: statement-shape checks, sanitized
parameters, table allow-lists and a readiness gate in front of the
connection manager.
"""

import logging
import re
import sqlite3
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Mapping, NamedTuple, Optional, Sequence, TypeVar

from organizadin.config import DB_PATH
from organizadin.connection_manager import ConnectionManager, DatabaseError
from organizadin.input_validation import (
    MAX_SAFE_INTEGER,
    sanitize_id,
    sanitize_number,
    sanitize_sql_params,
    sanitize_text,
)
from organizadin.migrations import SchemaMigrator
from organizadin.schema import DATA_TABLES, UPDATABLE_TABLES

logger = logging.getLogger(__name__)

T = TypeVar("T")

_READ_STATEMENT = re.compile(r"^\s*SELECT\b", re.IGNORECASE)
_SCHEMA_KEYWORDS = re.compile(
    r"\b(DROP|TRUNCATE|ALTER|CREATE|PRAGMA|ATTACH|DETACH|VACUUM|REINDEX)\b", re.IGNORECASE
)
_SQL_COMMENTS = re.compile(r"--[^\n]*|/\*.*?(\*/|$)", re.DOTALL)
_DELETE_STATEMENT = re.compile(r"\bDELETE\s+FROM\b", re.IGNORECASE)
_WHERE_CLAUSE = re.compile(r"\bWHERE\b", re.IGNORECASE)
_COLUMN_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


class ValidationError(DatabaseError):
    """Raised when a value cannot be sanitized; nothing was executed"""
    pass


class RejectedStatementError(DatabaseError):
    """Raised for disallowed statement shapes or unknown tables (programmer error)"""
    pass


class NotInitializedError(DatabaseError):
    """Raised when the facade is used before initialize() completed"""
    pass


class StorageInitializationError(DatabaseError):
    """Raised when startup migrations fail; storage is unusable"""
    pass


class WriteResult(NamedTuple):
    last_row_id: Optional[int]
    rows_affected: int


class SecureDatabase:
    """
    Facade over the ConnectionManager.

    Responsibilities:
        - Run migrations exactly once (initialize) before any other call
        - Reject statements of the wrong shape for the call
        - Sanitize every bound parameter
        - Table-scoped insert/update/delete against an allow-list
    """

    def __init__(self, manager: Optional[ConnectionManager] = None, db_path: str = DB_PATH):
        self.manager = manager if manager is not None else ConnectionManager(db_path)
        self._ready = False

    # ---------------------------------------------------------------- lifecycle

    def initialize(self) -> None:
        """
        Bring the schema up to date. Must complete before any other call.

        Raises:
            StorageInitializationError: if any migration step fails
        """
        if self._ready:
            return
        try:
            SchemaMigrator(self.manager).run()
        except Exception as e:
            logger.error("Storage initialization failed: %s", e)
            raise StorageInitializationError("cannot initialize storage") from e
        self._ready = True

    @property
    def is_ready(self) -> bool:
        return self._ready

    def close(self) -> None:
        self.manager.close()

    def __enter__(self):
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _check_ready(self) -> None:
        if not self._ready:
            raise NotInitializedError("Storage not initialized. Call initialize() first.")

    def _run(self, operation: Callable[[sqlite3.Connection], T]) -> T:
        try:
            return self.manager.run(operation)
        except sqlite3.Error as e:
            raise DatabaseError(f"Database operation failed: {e}") from e

    # ---------------------------------------------------------------- parameters

    @staticmethod
    def _bind(params: Sequence[Any]) -> tuple:
        if isinstance(params, (str, bytes)) or not isinstance(params, Sequence):
            raise ValidationError("Parameters must be a sequence")
        bound = []
        for index, result in enumerate(sanitize_sql_params(params)):
            if not result.valid:
                raise ValidationError(f"Parameter {index} could not be sanitized")
            bound.append(result.value)
        return tuple(bound)

    @staticmethod
    def _sanitize_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
        if not fields:
            raise ValidationError("No fields given")
        sanitized = {}
        for key, value in fields.items():
            if not isinstance(key, str) or not _COLUMN_NAME.fullmatch(key):
                raise RejectedStatementError(f"Invalid column name: {key!r}")
            if value is None:
                sanitized[key] = None
            elif isinstance(value, bool):
                sanitized[key] = int(value)
            elif isinstance(value, (int, float)):
                result = sanitize_number(value, -MAX_SAFE_INTEGER, MAX_SAFE_INTEGER)
                if not result.valid:
                    raise ValidationError(f"Invalid numeric value for '{key}'")
                sanitized[key] = result.value
            elif isinstance(value, str):
                sanitized[key] = sanitize_text(value)
            else:
                raise ValidationError(f"Unsupported value type for '{key}': {type(value).__name__}")
        return sanitized

    @staticmethod
    def _require_id(record_id: Any) -> int:
        result = sanitize_id(record_id)
        if not result.valid:
            raise ValidationError(f"Invalid record id: {record_id!r}")
        return result.value

    # ---------------------------------------------------------------- raw statements

    def execute(self, statement: str, params: Sequence[Any] = ()) -> WriteResult:
        """
        Run a write statement.

        Raises:
            RejectedStatementError: schema-changing or engine-level keyword
                (PRAGMA, ATTACH...), or a DELETE without a WHERE clause
            ValidationError: a parameter could not be sanitized
            DatabaseError: the engine rejected the statement
        """
        self._check_ready()
        if not isinstance(statement, str) or not statement.strip():
            raise RejectedStatementError("Empty statement")
        if _SCHEMA_KEYWORDS.search(statement):
            raise RejectedStatementError("Schema-changing statements are not allowed")
        code = _SQL_COMMENTS.sub(" ", statement)
        if _DELETE_STATEMENT.search(code) and not _WHERE_CLAUSE.search(code):
            raise RejectedStatementError("DELETE without a WHERE clause is not allowed")

        bound = self._bind(params)

        def operation(conn):
            cursor = conn.execute(statement, bound)
            return WriteResult(cursor.lastrowid, cursor.rowcount)

        return self._run(operation)

    def _check_read(self, statement: str) -> None:
        if not isinstance(statement, str) or not _READ_STATEMENT.match(statement):
            raise RejectedStatementError("Only SELECT statements are allowed on the read path")

    def query_many(self, statement: str, params: Sequence[Any] = ()) -> List[Dict]:
        self._check_ready()
        self._check_read(statement)
        bound = self._bind(params)
        rows = self._run(lambda conn: conn.execute(statement, bound).fetchall())
        return [dict(row) for row in rows]

    def query_one(self, statement: str, params: Sequence[Any] = ()) -> Optional[Dict]:
        self._check_ready()
        self._check_read(statement)
        bound = self._bind(params)
        row = self._run(lambda conn: conn.execute(statement, bound).fetchone())
        return dict(row) if row is not None else None

    # ---------------------------------------------------------------- table helpers

    def insert(self, table: str, fields: Mapping[str, Any]) -> int:
        """
        Insert one row into an allow-listed table.

        Returns:
            The new row id
        """
        self._check_ready()
        if table not in DATA_TABLES:
            raise RejectedStatementError(f"Table not allowed: {table!r}")
        data = self._sanitize_fields(fields)

        columns = ", ".join(data)
        placeholders = ", ".join("?" for _ in data)
        sql = f"INSERT INTO {table} ({columns}) VALUES ({placeholders})"
        values = tuple(data.values())
        return self._run(lambda conn: conn.execute(sql, values).lastrowid)

    def update(self, table: str, record_id: Any, fields: Mapping[str, Any]) -> int:
        """
        Update one row by id. A non-sanitizable id is refused before anything runs.

        Returns:
            Number of rows updated (0 or 1)
        """
        self._check_ready()
        if table not in UPDATABLE_TABLES:
            raise RejectedStatementError(f"Table not allowed: {table!r}")
        safe_id = self._require_id(record_id)
        data = self._sanitize_fields(fields)

        set_clause = ", ".join(f"{key} = ?" for key in data)
        sql = f"UPDATE {table} SET {set_clause} WHERE id = ?"
        values = (*data.values(), safe_id)
        return self._run(lambda conn: conn.execute(sql, values).rowcount)

    def delete(self, table: str, record_id: Any) -> int:
        self._check_ready()
        if table not in DATA_TABLES:
            raise RejectedStatementError(f"Table not allowed: {table!r}")
        safe_id = self._require_id(record_id)
        sql = f"DELETE FROM {table} WHERE id = ?"
        return self._run(lambda conn: conn.execute(sql, (safe_id,)).rowcount)

    def clear_table(self, table: str, keep_defaults: bool = False) -> int:
        """
        Remove every row of an allow-listed table (backup restore only).
        With keep_defaults, default categories survive.
        """
        self._check_ready()
        if table not in DATA_TABLES:
            raise RejectedStatementError(f"Table not allowed: {table!r}")
        sql = f"DELETE FROM {table}"
        if keep_defaults and table == "categories":
            sql += " WHERE is_default = 0"
        return self._run(lambda conn: conn.execute(sql).rowcount)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Group several facade calls into one atomic unit."""
        self._check_ready()
        try:
            with self.manager.transaction():
                yield
        except sqlite3.Error as e:
            raise DatabaseError(f"Transaction failed: {e}") from e
