"""Tests for the Cursor key-value store adapter."""

import sqlite3
import threading
from pathlib import Path
from unittest.mock import patch

import pytest

from session_radar.errors import RecordParseError, StoreConnectionError
from session_radar.readers.kv_store import ConversationFilters, KeyValueStore


@pytest.fixture
def store(kv_builder) -> KeyValueStore:
    """Create a connected adapter over the builder's database."""
    kv_store = KeyValueStore(kv_builder.path)
    kv_store.connect()
    yield kv_store
    kv_store.close()


class TestConnect:
    """Tests for opening the store."""

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        """Should raise StoreConnectionError for a missing file."""
        kv_store = KeyValueStore(tmp_path / "missing.vscdb")

        with pytest.raises(StoreConnectionError) as exc_info:
            kv_store.connect()

        assert "does not exist" in str(exc_info.value)
        assert kv_store.is_connected is False

    def test_missing_table_raises(self, tmp_path: Path) -> None:
        """Should reject databases without the cursorDiskKV table."""
        db_path = tmp_path / "other.db"
        with sqlite3.connect(db_path) as conn:
            conn.execute("CREATE TABLE ItemTable (key TEXT, value BLOB)")

        with pytest.raises(StoreConnectionError):
            KeyValueStore(db_path).connect()

    def test_not_a_database_raises(self, tmp_path: Path) -> None:
        db_path = tmp_path / "garbage.vscdb"
        db_path.write_bytes(b"this is not sqlite" * 100)

        with pytest.raises(StoreConnectionError):
            KeyValueStore(db_path).connect()

    def test_connection_is_read_only(self, store: KeyValueStore) -> None:
        """Should refuse writes through the adapter's connection."""
        with pytest.raises(sqlite3.OperationalError):
            store._connection().execute("INSERT INTO cursorDiskKV VALUES ('k', 'v')")

    def test_close_is_idempotent(self, store: KeyValueStore) -> None:
        store.close()
        store.close()

        assert store.is_connected is False

    def test_context_manager(self, kv_builder) -> None:
        with KeyValueStore(kv_builder.path) as kv_store:
            assert kv_store.is_connected

        assert kv_store.is_connected is False

    def test_concurrent_connect_opens_one_connection(self, kv_builder) -> None:
        """Should open a single connection when several threads connect at once."""
        kv_store = KeyValueStore(kv_builder.path)
        barrier = threading.Barrier(8)

        def connect() -> None:
            barrier.wait()
            kv_store.connect()

        with patch("session_radar.readers.kv_store.sqlite3.connect", wraps=sqlite3.connect) as opened:
            threads = [threading.Thread(target=connect) for _ in range(8)]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()

        assert opened.call_count == 1
        kv_store.close()

    def test_failed_reconnect_raises_store_error(self, kv_builder, store: KeyValueStore) -> None:
        """Should surface StoreConnectionError when reconnecting is impossible."""
        store.close()
        kv_builder.path.unlink()

        with pytest.raises(StoreConnectionError):
            store.get_conversation("conv-1")

        assert store.is_connected is False


class TestListConversationIds:
    """Tests for list_conversation_ids."""

    def test_most_recent_insertion_first(self, kv_builder, store: KeyValueStore) -> None:
        """Should order by descending ROWID."""
        kv_builder.add_conversation("first")
        kv_builder.add_conversation("second")
        kv_builder.add_conversation("third")

        assert store.list_conversation_ids() == ["third", "second", "first"]

    def test_skips_small_and_legacy_records(self, kv_builder, store: KeyValueStore) -> None:
        """Should skip values at or below the size floor and records without _v."""
        kv_builder.add_conversation("modern")
        kv_builder.put("composerData:tiny", '{"_v": 3}')
        kv_builder.put("composerData:legacy", '{"composerId": "legacy", "conversation": []' + " " * 200 + "}")
        kv_builder.put("bubbleId:modern:x", '{"_v": 3, "type": 1' + " " * 200 + "}")

        assert store.list_conversation_ids() == ["modern"]

    def test_respects_max_conversations(self, kv_builder) -> None:
        for index in range(5):
            kv_builder.add_conversation(f"c{index}")

        with KeyValueStore(kv_builder.path, max_conversations=2) as kv_store:
            assert kv_store.list_conversation_ids() == ["c4", "c3"]

    def test_keyword_filter(self, kv_builder, store: KeyValueStore) -> None:
        kv_builder.add_conversation("auth", name="Fix authentication flow")
        kv_builder.add_conversation("docs", name="Update README")

        ids = store.list_conversation_ids(ConversationFilters(keywords=["authentication"]))

        assert ids == ["auth"]

    def test_relevant_files_filter(self, kv_builder, store: KeyValueStore) -> None:
        kv_builder.add_conversation("a", relevantFiles=["src/login.py"])
        kv_builder.add_conversation("b", relevantFiles=["src/other.py"])

        ids = store.list_conversation_ids(ConversationFilters(relevant_files=["src/login.py"]))

        assert ids == ["a"]

    def test_empty_store(self, store: KeyValueStore) -> None:
        assert store.list_conversation_ids() == []


class TestGetConversation:
    """Tests for get_conversation."""

    def test_returns_record(self, kv_builder, store: KeyValueStore) -> None:
        kv_builder.add_conversation("conv-1", [{"type": 1, "text": "hi"}], name="Hello")

        record = store.get_conversation("conv-1")

        assert record is not None
        assert record.title == "Hello"
        assert len(record.headers) == 1

    def test_missing_returns_none(self, store: KeyValueStore) -> None:
        assert store.get_conversation("nope") is None

    def test_corrupt_record_raises(self, kv_builder, store: KeyValueStore) -> None:
        kv_builder.put("composerData:bad", "{broken")

        with pytest.raises(RecordParseError):
            store.get_conversation("bad")

    def test_second_lookup_is_cached(self, kv_builder, store: KeyValueStore) -> None:
        """Should read the backing store only once per key."""
        kv_builder.add_conversation("conv-1")

        with patch.object(store, "fetch_value", wraps=store.fetch_value) as fetch:
            first = store.get_conversation("conv-1")
            second = store.get_conversation("conv-1")

        assert first is second
        assert fetch.call_count == 1

    def test_clear_cache_forces_reload(self, kv_builder, store: KeyValueStore) -> None:
        kv_builder.add_conversation("conv-1", name="Old")
        assert store.get_conversation("conv-1").title == "Old"

        kv_builder.add_conversation("conv-1", name="New")
        assert store.get_conversation("conv-1").title == "Old"

        store.clear_cache()
        assert store.get_conversation("conv-1").title == "New"

    def test_clear_cache_during_read_drops_stale_record(self, kv_builder, store: KeyValueStore) -> None:
        """Should not cache a record read before a concurrent clear."""
        kv_builder.add_conversation("conv-1", name="Old")
        fetch_value = store.fetch_value

        def fetch_then_invalidate(key: str):
            raw = fetch_value(key)
            kv_builder.add_conversation("conv-1", name="New")
            store.clear_cache()
            return raw

        with patch.object(store, "fetch_value", side_effect=fetch_then_invalidate):
            assert store.get_conversation("conv-1").title == "Old"

        assert store.get_conversation("conv-1").title == "New"

    def test_reconnects_after_close(self, kv_builder, store: KeyValueStore) -> None:
        kv_builder.add_conversation("conv-1")
        store.close()

        assert store.get_conversation("conv-1") is not None
        assert store.is_connected
