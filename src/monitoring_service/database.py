"""
SQLite persistence substrate for the monitoring service.

This module owns the schema and exposes a small, record-kind agnostic set of
primitives (point lookup, existence check, filtered select, count, insert,
update) through a :class:`Session`. One session is one transaction: it is
committed when the ``with`` block exits normally and rolled back otherwise.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .exceptions import StorageError
from .query import Query, render_count, render_group_count, render_select
from .utils import deserialize_datetime, ensure_directory, serialize_datetime

logger = logging.getLogger(__name__)

# Default database path
DEFAULT_DB_PATH = Path("data/monitoring.db")

TIMESTAMP_COLUMNS = frozenset({"effective_from", "effective_to", "created_at", "last_updated_at"})

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS reference_data (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        ref_data_type TEXT NOT NULL,
        ref_data_value TEXT NOT NULL,
        description TEXT,
        editable INTEGER NOT NULL DEFAULT 1,
        effective_from TEXT NOT NULL,
        effective_to TEXT,
        created_at TEXT NOT NULL,
        last_updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_reference_data_key
    ON reference_data(ref_data_type, ref_data_value, effective_from)
    """,
    """
    CREATE TABLE IF NOT EXISTS document_configurations (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        footer_id INTEGER NOT NULL REFERENCES reference_data(id),
        app_doc_spec_id INTEGER NOT NULL REFERENCES reference_data(id),
        code_id INTEGER NOT NULL REFERENCES reference_data(id),
        value TEXT NOT NULL,
        description TEXT,
        effective_from TEXT NOT NULL,
        effective_to TEXT,
        created_at TEXT NOT NULL,
        last_updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_document_configurations_key
    ON document_configurations(footer_id, app_doc_spec_id, code_id, value, effective_from)
    """,
    """
    CREATE TABLE IF NOT EXISTS document_requests (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        source_system_id INTEGER REFERENCES reference_data(id),
        document_type_id INTEGER REFERENCES reference_data(id),
        document_name_id INTEGER REFERENCES reference_data(id),
        status_id INTEGER REFERENCES reference_data(id),
        created_at TEXT NOT NULL,
        last_updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_document_requests_created_at
    ON document_requests(created_at DESC)
    """,
    """
    CREATE TABLE IF NOT EXISTS document_request_blobs (
        request_id INTEGER PRIMARY KEY REFERENCES document_requests(id),
        json_content TEXT,
        xml_content TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS request_metadata_values (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        request_id INTEGER NOT NULL REFERENCES document_requests(id),
        key_id INTEGER NOT NULL REFERENCES reference_data(id),
        metadata_value TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_request_metadata_values_request
    ON request_metadata_values(request_id, key_id)
    """,
    """
    CREATE TABLE IF NOT EXISTS batches (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        request_id INTEGER NOT NULL REFERENCES document_requests(id),
        batch_name TEXT,
        status_id INTEGER REFERENCES reference_data(id),
        created_at TEXT NOT NULL,
        last_updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_batches_request
    ON batches(request_id, created_at DESC)
    """,
    """
    CREATE TABLE IF NOT EXISTS error_details (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        batch_id INTEGER NOT NULL REFERENCES batches(id),
        error_code TEXT,
        error_message TEXT,
        created_at TEXT NOT NULL
    )
    """,
)


def _encode(value: Any) -> Any:
    if hasattr(value, "isoformat"):
        return serialize_datetime(value)
    if isinstance(value, bool):
        return int(value)
    return value


class Session:
    """Data-access primitives bound to one open connection."""

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    def execute(self, sql: str, params: Any = ()) -> sqlite3.Cursor:
        return self._conn.execute(sql, params)

    def get_by_id(self, table: str, record_id: Any, key: str = "id") -> Optional[Dict[str, Any]]:
        row = self._conn.execute(
            f"SELECT * FROM {table} WHERE {key} = ?", (record_id,)
        ).fetchone()
        return self._row_to_dict(row) if row else None

    def exists(self, table: str, record_id: Any) -> bool:
        row = self._conn.execute(
            f"SELECT 1 FROM {table} WHERE id = ? LIMIT 1", (record_id,)
        ).fetchone()
        return row is not None

    def select(self, query: Query) -> List[Dict[str, Any]]:
        sql, params = render_select(query)
        logger.debug("select: %s %s", sql, params)
        return [self._row_to_dict(row) for row in self._conn.execute(sql, params).fetchall()]

    def count(self, query: Query) -> int:
        sql, params = render_count(query)
        return int(self._conn.execute(sql, params).fetchone()[0])

    def group_count(self, query: Query, column: str) -> List[Tuple[Any, int]]:
        sql, params = render_group_count(query, column)
        return [(row["group_key"], int(row["total"])) for row in self._conn.execute(sql, params).fetchall()]

    def insert(self, table: str, data: Dict[str, Any]) -> int:
        """Insert a row and return its generated id."""
        columns = list(data.keys())
        placeholders = ", ".join("?" for _ in columns)
        cursor = self._conn.execute(
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
            [_encode(data[column]) for column in columns],
        )
        return int(cursor.lastrowid)

    def update(self, table: str, record_id: Any, changes: Dict[str, Any]) -> int:
        """Update columns of one row; returns the number of rows touched."""
        assignments = ", ".join(f"{column} = ?" for column in changes)
        values = [_encode(value) for value in changes.values()]
        cursor = self._conn.execute(
            f"UPDATE {table} SET {assignments} WHERE id = ?", [*values, record_id]
        )
        return cursor.rowcount

    @staticmethod
    def _row_to_dict(row: sqlite3.Row) -> Dict[str, Any]:
        record = dict(row)
        for column in TIMESTAMP_COLUMNS.intersection(record):
            record[column] = deserialize_datetime(record[column])
        return record


class Database:
    """
    SQLite database holding every record kind of the service.

    Thread-safe: every session opens its own connection and SQLite handles
    concurrent access with WAL mode.
    """

    def __init__(self, db_path: Path = DEFAULT_DB_PATH):
        self.db_path = Path(db_path)
        ensure_directory(self.db_path.parent)
        self._init_db()

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Open a transactional session; sqlite errors surface as StorageError."""
        try:
            conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        except sqlite3.Error as exc:
            raise StorageError(f"Could not open database: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA foreign_keys=ON")
            yield Session(conn)
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise StorageError(str(exc)) from exc
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self.session() as session:
            for statement in SCHEMA:
                session.execute(statement)
        logger.info("Database ready at %s", self.db_path)

    def check_connection(self) -> bool:
        try:
            with self.session() as session:
                session.execute("SELECT 1").fetchone()
            return True
        except StorageError:
            logger.exception("Database connection check failed")
            return False
