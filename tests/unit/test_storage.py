"""Unit tests for the key-value storage backends."""

import asyncio

import pytest

from promptwild.core.storage import MemoryKeyValueStorage, SQLiteKeyValueStorage, StorageError


def run(coro):
    return asyncio.run(coro)


@pytest.fixture(params=["memory", "sqlite"])
def storage(request, temp_dir):
    """Yield each storage backend in turn."""
    if request.param == "memory":
        return MemoryKeyValueStorage()
    return SQLiteKeyValueStorage(temp_dir / "test.db", table="keyval")


class TestKeyValueStorage:
    """Behaviour shared by every backend."""

    def test_get_missing(self, storage):
        """Test that a missing key reads as None."""
        assert run(storage.get_item("missing")) is None

    def test_set_and_get(self, storage):
        """Test storing and reading a value."""
        run(storage.set_item("key", "value"))

        assert run(storage.get_item("key")) == "value"

    def test_overwrite(self, storage):
        """Test that setting a key twice keeps the last value."""
        run(storage.set_item("key", "one"))
        run(storage.set_item("key", "two"))

        assert run(storage.get_item("key")) == "two"

    def test_unicode_value(self, storage):
        """Test that non-ASCII text round-trips unchanged."""
        run(storage.set_item("key", '["긴 머리", "ショート"]'))

        assert run(storage.get_item("key")) == '["긴 머리", "ショート"]'

    def test_remove(self, storage):
        """Test removing a key, and removing a missing key."""
        run(storage.set_item("key", "value"))

        run(storage.remove_item("key"))
        run(storage.remove_item("key"))

        assert run(storage.get_item("key")) is None

    def test_clear(self, storage):
        """Test that clear removes every key."""
        run(storage.set_item("a", "1"))
        run(storage.set_item("b", "2"))

        run(storage.clear())

        assert run(storage.get_item("a")) is None
        assert run(storage.get_item("b")) is None


class TestSQLiteKeyValueStorage:
    """SQLite-specific behaviour."""

    def test_creates_parent_directory(self, temp_dir):
        """Test that the database directory is created."""
        db_path = temp_dir / "nested" / "dir" / "test.db"

        SQLiteKeyValueStorage(db_path)

        assert db_path.exists()

    def test_tables_are_independent(self, temp_dir):
        """Test that two tables in one database do not share keys."""
        db_path = temp_dir / "test.db"
        state = SQLiteKeyValueStorage(db_path, table="state")
        content = SQLiteKeyValueStorage(db_path, table="content")

        run(state.set_item("key", "state value"))
        run(content.set_item("key", "content value"))
        run(content.clear())

        assert run(state.get_item("key")) == "state value"
        assert run(content.get_item("key")) is None

    def test_values_persist_across_instances(self, temp_dir):
        """Test that a new instance sees previously written values."""
        db_path = temp_dir / "test.db"
        run(SQLiteKeyValueStorage(db_path).set_item("key", "value"))

        assert run(SQLiteKeyValueStorage(db_path).get_item("key")) == "value"

    @pytest.mark.parametrize("table", ["", "1table", "drop table x;", "a-b"])
    def test_invalid_table_name(self, temp_dir, table):
        """Test that table names must be plain identifiers."""
        with pytest.raises(ValueError):
            SQLiteKeyValueStorage(temp_dir / "test.db", table=table)

    def test_unopenable_database(self, temp_dir):
        """Test that SQLite failures surface as StorageError."""
        with pytest.raises(StorageError):
            SQLiteKeyValueStorage(temp_dir)


class TestMemoryKeyValueStorage:
    """Memory-specific behaviour."""

    def test_initial_items(self):
        """Test seeding the storage with initial items."""
        storage = MemoryKeyValueStorage({"a": "1"})

        assert run(storage.get_item("a")) == "1"
