"""Lazy resolution of individual conversation messages ("bubbles")."""

from collections.abc import Iterator

from session_radar.errors import ReaderError
from session_radar.logging import get_logger
from session_radar.models import ConversationRecord, MessageRecord
from session_radar.readers.kv_store import KeyValueStore
from session_radar.readers.records import message_key, parse_message_record

logger = get_logger("messages")


class MessageResolver:
    """Fetches message records on demand through the store's cache.

    Resolving every message of every conversation is the dominant cost of
    reading the key-value store, so messages are only fetched when a
    summary actually needs their text, files, or timestamps.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    def get_message(self, conversation_id: str, message_id: str) -> MessageRecord | None:
        """Fetch and decode one message.

        Args:
            conversation_id: Composer ID owning the message
            message_id: Bubble ID from the conversation header list

        Returns:
            MessageRecord, or None if the message does not exist

        Raises:
            RecordParseError: If the stored value cannot be decoded
        """
        key = message_key(conversation_id, message_id)

        def load() -> MessageRecord | None:
            raw = self._store.fetch_value(key)
            if raw is None:
                return None
            return parse_message_record(raw, key, message_id)

        return self._store.cache.get_or_load(("message", conversation_id, message_id), load)

    def _try_get(self, conversation_id: str, message_id: str) -> MessageRecord | None:
        try:
            return self.get_message(conversation_id, message_id)
        except ReaderError as e:
            logger.warning(
                "Skipping unreadable message: conversation=%s message=%s error=%s",
                conversation_id,
                message_id,
                e,
            )
            return None

    def resolve(self, record: ConversationRecord) -> Iterator[MessageRecord]:
        """Yield the conversation's messages in header order.

        Missing or undecodable messages are skipped; the remaining messages
        are still yielded.
        """
        for header in record.headers:
            message = self._try_get(record.conversation_id, header.message_id)
            if message is not None:
                yield message

    def last_message(self, record: ConversationRecord) -> MessageRecord | None:
        """Resolve only the message named by the final header."""
        if not record.headers:
            return None
        return self._try_get(record.conversation_id, record.headers[-1].message_id)
