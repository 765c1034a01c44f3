"""Tests for message resolution."""

from unittest.mock import patch

import pytest

from session_radar.errors import RecordParseError
from session_radar.readers.kv_store import KeyValueStore
from session_radar.readers.messages import MessageResolver


@pytest.fixture
def store(kv_builder) -> KeyValueStore:
    kv_store = KeyValueStore(kv_builder.path)
    kv_store.connect()
    yield kv_store
    kv_store.close()


class TestMessageResolver:
    """Tests for MessageResolver."""

    def test_get_message(self, kv_builder, store: KeyValueStore) -> None:
        ids = kv_builder.add_conversation("c1", [{"type": 1, "text": "hello"}])

        message = MessageResolver(store).get_message("c1", ids[0])

        assert message is not None
        assert message.text == "hello"

    def test_missing_message_returns_none(self, store: KeyValueStore) -> None:
        assert MessageResolver(store).get_message("c1", "nope") is None

    def test_corrupt_message_raises(self, kv_builder, store: KeyValueStore) -> None:
        kv_builder.put("bubbleId:c1:bad", "{oops")

        with pytest.raises(RecordParseError):
            MessageResolver(store).get_message("c1", "bad")

    def test_messages_are_cached(self, kv_builder, store: KeyValueStore) -> None:
        """Should hit the store once per message."""
        ids = kv_builder.add_conversation("c1", [{"type": 1, "text": "hello"}])
        resolver = MessageResolver(store)

        with patch.object(store, "fetch_value", wraps=store.fetch_value) as fetch:
            resolver.get_message("c1", ids[0])
            resolver.get_message("c1", ids[0])

        assert fetch.call_count == 1

    def test_resolve_preserves_header_order(self, kv_builder, store: KeyValueStore) -> None:
        kv_builder.add_conversation(
            "c1",
            [
                {"type": 1, "text": "one"},
                {"type": 2, "text": "two"},
                {"type": 1, "text": "three"},
            ],
        )
        record = store.get_conversation("c1")

        texts = [m.text for m in MessageResolver(store).resolve(record)]

        assert texts == ["one", "two", "three"]

    def test_resolve_skips_missing_and_corrupt(self, kv_builder, store: KeyValueStore) -> None:
        """Should skip unreadable messages and keep the rest."""
        kv_builder.add_conversation(
            "c1",
            [
                {"bubbleId": "m1", "type": 1, "text": "one"},
                {"bubbleId": "m2", "type": 2, "text": "two"},
                {"bubbleId": "m3", "type": 1, "text": "three"},
            ],
        )
        kv_builder.put("bubbleId:c1:m2", "{corrupt")
        record = store.get_conversation("c1")

        texts = [m.text for m in MessageResolver(store).resolve(record)]

        assert texts == ["one", "three"]

    def test_last_message(self, kv_builder, store: KeyValueStore) -> None:
        kv_builder.add_conversation("c1", [{"type": 1, "text": "one"}, {"type": 2, "text": "two"}])
        record = store.get_conversation("c1")

        last = MessageResolver(store).last_message(record)

        assert last is not None
        assert last.text == "two"

    def test_last_message_of_empty_conversation(self, kv_builder, store: KeyValueStore) -> None:
        kv_builder.add_conversation("c1")

        assert MessageResolver(store).last_message(store.get_conversation("c1")) is None
