"""
Unit tests for the ordered and key-value storage backends.

The same contract checks run against the in-memory and SQLite stores.
"""

import sqlite3

import pytest

from starledger.core.blockchain import Blockchain
from starledger.core.exceptions import HeightConflictError, StorageError
from starledger.core.storage import (
    MemoryKeyValueStore,
    MemoryOrderedStore,
    SQLiteDatabase,
    SQLiteKeyValueStore,
    SQLiteOrderedStore,
    open_sqlite_stores,
)


@pytest.fixture
def sqlite_db(tmp_path):
    db = SQLiteDatabase(tmp_path / "ledger.db")
    yield db
    db.close()


@pytest.fixture(params=["memory", "sqlite"])
def ordered_store(request, sqlite_db):
    if request.param == "memory":
        return MemoryOrderedStore()
    return SQLiteOrderedStore(sqlite_db, page_size=2)


@pytest.fixture(params=["memory", "sqlite"])
def kv_store(request, sqlite_db):
    if request.param == "memory":
        return MemoryKeyValueStore()
    return SQLiteKeyValueStore(sqlite_db)


class TestOrderedStore:

    def test_empty(self, ordered_store):
        assert ordered_store.last_key() is None
        assert ordered_store.get(0) is None
        assert list(ordered_store.scan()) == []

    def test_insert_and_get(self, ordered_store):
        ordered_store.insert(0, "zero")
        ordered_store.insert(1, "one")
        assert ordered_store.get(1) == "one"
        assert ordered_store.last_key() == 1

    def test_insert_refuses_existing_key(self, ordered_store):
        ordered_store.insert(0, "zero")
        with pytest.raises(HeightConflictError) as exc_info:
            ordered_store.insert(0, "other")
        assert exc_info.value.height == 0
        assert ordered_store.get(0) == "zero"

    def test_put_overwrites(self, ordered_store):
        ordered_store.insert(0, "zero")
        ordered_store.put(0, "rewritten")
        assert ordered_store.get(0) == "rewritten"

    def test_scan_is_ascending_across_pages(self, ordered_store):
        for key in [4, 0, 2, 1, 3]:
            ordered_store.insert(key, f"v{key}")
        assert list(ordered_store.scan()) == [(k, f"v{k}") for k in range(5)]

    def test_scan_skips_gaps(self, ordered_store):
        for key in range(4):
            ordered_store.insert(key, f"v{key}")
        ordered_store.delete(2)
        assert [k for k, _ in ordered_store.scan()] == [0, 1, 3]
        assert ordered_store.last_key() == 3


class TestKeyValueStore:

    def test_put_get_delete(self, kv_store):
        assert kv_store.get("abc") is None
        kv_store.put("abc", "first")
        kv_store.put("abc", "second")
        assert kv_store.get("abc") == "second"
        kv_store.delete("abc")
        assert kv_store.get("abc") is None

    def test_delete_missing_is_noop(self, kv_store):
        kv_store.delete("nobody")
        assert kv_store.get("nobody") is None


class TestSQLiteDatabase:

    def test_data_survives_reopen(self, tmp_path, make_body):
        path = tmp_path / "node" / "ledger.db"
        ledger, auth = open_sqlite_stores(path)
        chain = Blockchain(ledger)
        block = chain.add_block(make_body(story="persisted"))
        auth.put("abc", "{}")
        ledger.db.close()

        ledger, auth = open_sqlite_stores(path)
        reopened = Blockchain(ledger)
        assert reopened.get_height() == 1
        assert reopened.get_block(1).hash == block.hash
        assert reopened.get_block(1).body.item.text_decoded == "persisted"
        assert auth.get("abc") == "{}"
        ledger.db.close()

    def test_uses_wal_journal(self, sqlite_db):
        assert sqlite_db.execute("PRAGMA journal_mode;")[0][0].lower() == "wal"

    def test_statement_errors_become_storage_errors(self, sqlite_db):
        with pytest.raises(StorageError):
            sqlite_db.execute("SELECT * FROM missing_table")

    def test_integrity_errors_propagate_raw(self, sqlite_db):
        sqlite_db.execute("INSERT INTO ledger (height, value) VALUES (0, 'a')", commit=True)
        with pytest.raises(sqlite3.IntegrityError):
            sqlite_db.execute("INSERT INTO ledger (height, value) VALUES (0, 'b')", commit=True)

    def test_unopenable_path_raises_storage_error(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        with pytest.raises(StorageError):
            SQLiteDatabase(blocker / "ledger.db")
