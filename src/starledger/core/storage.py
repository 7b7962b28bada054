"""
Storage backends for the ledger and the authorization records.

Two contracts are used by the core:

- ``OrderedStore``: integer keys (block heights) to serialized blocks, with
  insert-only writes, the highest key, and an ascending streamed scan.
- ``KeyValueStore``: string keys (identities) to serialized authorization
  records with point get/put/delete.

In-memory implementations back the tests; the SQLite implementations keep
both namespaces as separate tables in one WAL-mode database file.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Dict, Iterator, Optional, Protocol, Tuple, Union

from starledger.core.config import SCAN_PAGE_SIZE
from starledger.core.exceptions import HeightConflictError, StorageError

logger = logging.getLogger(__name__)


class OrderedStore(Protocol):
    def get(self, key: int) -> Optional[str]: ...

    def insert(self, key: int, value: str) -> None: ...

    def put(self, key: int, value: str) -> None: ...

    def last_key(self) -> Optional[int]: ...

    def scan(self) -> Iterator[Tuple[int, str]]: ...


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def put(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryOrderedStore:
    """Dict-backed ordered store."""

    def __init__(self) -> None:
        self._data: Dict[int, str] = {}
        self._lock = threading.Lock()

    def get(self, key: int) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def insert(self, key: int, value: str) -> None:
        with self._lock:
            if key in self._data:
                raise HeightConflictError(f"Height {key} is already written", height=key)
            self._data[key] = value

    def put(self, key: int, value: str) -> None:
        """Overwrite a key unconditionally. Maintenance and tests only."""
        with self._lock:
            self._data[key] = value

    def delete(self, key: int) -> None:
        with self._lock:
            self._data.pop(key, None)

    def last_key(self) -> Optional[int]:
        with self._lock:
            return max(self._data) if self._data else None

    def scan(self) -> Iterator[Tuple[int, str]]:
        with self._lock:
            keys = sorted(self._data)
        for key in keys:
            value = self.get(key)
            if value is not None:
                yield key, value


class MemoryKeyValueStore:
    """Dict-backed key-value store."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def put(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return key in self._data


class SQLiteDatabase:
    """
    Shared SQLite connection for the ledger and authorization tables.

    One connection is shared across threads; every statement runs under
    ``self.lock``.
    """

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        self.lock = threading.RLock()
        try:
            if str(self.db_path) != ":memory:":
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.execute("PRAGMA journal_mode=WAL;")
            self._conn.execute("PRAGMA synchronous=NORMAL;")
            self._create_tables()
        except (sqlite3.Error, OSError) as e:
            logger.error(
                "Database connection failed for %s: %s",
                self.db_path,
                e,
                extra={"event": "storage.connect_failed"},
            )
            raise StorageError(f"Could not open database {self.db_path}: {e}") from e

    def _create_tables(self) -> None:
        with self._conn:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS ledger (
                    height INTEGER PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS authorizations (
                    identity TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )

    def execute(self, sql: str, params: tuple = (), commit: bool = False) -> list:
        with self.lock:
            try:
                if commit:
                    with self._conn:
                        return self._conn.execute(sql, params).fetchall()
                return self._conn.execute(sql, params).fetchall()
            except sqlite3.IntegrityError:
                raise
            except sqlite3.Error as e:
                logger.error(
                    "SQLite statement failed: %s",
                    e,
                    extra={"event": "storage.statement_failed", "db": str(self.db_path)},
                )
                raise StorageError(f"Database operation failed: {e}") from e

    def close(self) -> None:
        with self.lock:
            self._conn.close()


class SQLiteOrderedStore:
    """Ledger table keyed by block height."""

    def __init__(self, db: SQLiteDatabase, page_size: int = SCAN_PAGE_SIZE):
        self.db = db
        self.page_size = page_size

    def get(self, key: int) -> Optional[str]:
        rows = self.db.execute("SELECT value FROM ledger WHERE height = ?", (key,))
        return rows[0][0] if rows else None

    def insert(self, key: int, value: str) -> None:
        try:
            self.db.execute(
                "INSERT INTO ledger (height, value) VALUES (?, ?)", (key, value), commit=True
            )
        except sqlite3.IntegrityError as e:
            raise HeightConflictError(f"Height {key} is already written", height=key) from e

    def put(self, key: int, value: str) -> None:
        """Overwrite a key unconditionally. Maintenance and tests only."""
        self.db.execute(
            "INSERT OR REPLACE INTO ledger (height, value) VALUES (?, ?)", (key, value), commit=True
        )

    def delete(self, key: int) -> None:
        self.db.execute("DELETE FROM ledger WHERE height = ?", (key,), commit=True)

    def last_key(self) -> Optional[int]:
        rows = self.db.execute("SELECT MAX(height) FROM ledger")
        return rows[0][0] if rows and rows[0][0] is not None else None

    def scan(self) -> Iterator[Tuple[int, str]]:
        """Yield ``(height, value)`` ascending, one page at a time."""
        cursor = -1
        while True:
            rows = self.db.execute(
                "SELECT height, value FROM ledger WHERE height > ? ORDER BY height ASC LIMIT ?",
                (cursor, self.page_size),
            )
            if not rows:
                return
            for height, value in rows:
                yield height, value
            cursor = rows[-1][0]


class SQLiteKeyValueStore:
    """Authorization table keyed by identity."""

    def __init__(self, db: SQLiteDatabase):
        self.db = db

    def get(self, key: str) -> Optional[str]:
        rows = self.db.execute("SELECT value FROM authorizations WHERE identity = ?", (key,))
        return rows[0][0] if rows else None

    def put(self, key: str, value: str) -> None:
        self.db.execute(
            "INSERT OR REPLACE INTO authorizations (identity, value) VALUES (?, ?)",
            (key, value),
            commit=True,
        )

    def delete(self, key: str) -> None:
        self.db.execute("DELETE FROM authorizations WHERE identity = ?", (key,), commit=True)


def open_sqlite_stores(
    db_path: Union[str, Path],
) -> Tuple[SQLiteOrderedStore, SQLiteKeyValueStore]:
    """Open (creating if needed) the ledger and authorization stores in one file."""
    db = SQLiteDatabase(db_path)
    logger.info(
        "Opened ledger database %s",
        db.db_path,
        extra={"event": "storage.opened"},
    )
    return SQLiteOrderedStore(db), SQLiteKeyValueStore(db)
