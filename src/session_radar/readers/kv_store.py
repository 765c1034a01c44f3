"""Read-only adapter for Cursor's key-value SQLite store.

Cursor keeps its composer conversations in a single table:
    <globalStorage>/state.vscdb, table cursorDiskKV(key TEXT, value BLOB)

Relevant key patterns:
- composerData:<conversation-id> (conversation header list, todos, counters)
- bubbleId:<conversation-id>:<message-id> (one message)

The table has no reliable per-row creation time, so recency is approximated
by ROWID (insertion order).
"""

import sqlite3
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Self

from session_radar.cache import LookupCache
from session_radar.errors import ReaderError, StoreConnectionError
from session_radar.logging import get_logger
from session_radar.models import ConversationRecord
from session_radar.readers.records import (
    CONVERSATION_KEY_PREFIX,
    conversation_id_from_key,
    conversation_key,
    parse_conversation_record,
)

logger = get_logger("kv_store")

KV_TABLE = "cursorDiskKV"


@dataclass
class ConversationFilters:
    """Substring filters applied to serialized conversation values.

    Matching is done with SQL LIKE over the raw JSON, so it can both over-
    and under-match. It only narrows the candidate set.
    """

    project_path: str | None = None
    file_pattern: str | None = None
    relevant_files: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    has_code_blocks: bool = False
    min_length: int | None = None


class KeyValueStore:
    """Read-only access to the cursorDiskKV table with per-instance caching."""

    def __init__(
        self,
        db_path: Path,
        min_conversation_size: int = 100,
        max_conversations: int = 50,
        cache_enabled: bool = True,
    ) -> None:
        """Initialize the adapter without opening the database.

        Args:
            db_path: Path to state.vscdb
            min_conversation_size: Values at or below this length are skipped
            max_conversations: Upper bound on IDs returned by a listing
            cache_enabled: Whether record lookups are cached
        """
        self._db_path = Path(db_path)
        self._min_conversation_size = min_conversation_size
        self._max_conversations = max_conversations
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()
        self._cache = LookupCache(enabled=cache_enabled)

    @property
    def db_path(self) -> Path:
        return self._db_path

    @property
    def cache(self) -> LookupCache:
        """Record cache shared with the message resolver."""
        return self._cache

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    def connect(self) -> None:
        """Open a read-only connection and verify the expected table exists.

        Raises:
            StoreConnectionError: If the file is missing, unreadable, or
                is not a Cursor key-value store
        """
        self._open()

    def _open(self) -> sqlite3.Connection:
        """Return the open connection, opening it under the lock if needed."""
        with self._lock:
            if self._conn is None:
                self._conn = self._open_connection()
                logger.info("Connected to key-value store: path=%s", self._db_path)
            return self._conn

    def _open_connection(self) -> sqlite3.Connection:
        if not self._db_path.exists():
            raise StoreConnectionError(self._db_path, "file does not exist")

        uri = f"{self._db_path.resolve().as_uri()}?mode=ro"
        conn: sqlite3.Connection | None = None
        try:
            conn = sqlite3.connect(uri, uri=True, check_same_thread=False)
            conn.execute(f"SELECT COUNT(*) FROM {KV_TABLE} LIMIT 1").fetchone()
        except sqlite3.Error as e:
            if conn is not None:
                conn.close()
            raise StoreConnectionError(self._db_path, str(e)) from e

        return conn

    def close(self) -> None:
        """Close the database connection and drop cached records."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
        self._cache.clear()

    def clear_cache(self) -> None:
        """Drop every cached record."""
        self._cache.clear()

    def _connection(self) -> sqlite3.Connection:
        """Return the open connection, reconnecting if it was closed."""
        return self._open()

    def fetch_value(self, key: str) -> str | bytes | None:
        """Read the raw value stored under key.

        Args:
            key: Exact store key

        Returns:
            Serialized value, or None if the key is absent

        Raises:
            ReaderError: If the query fails
        """
        conn = self._connection()
        try:
            with self._lock:
                row = conn.execute(
                    f"SELECT value FROM {KV_TABLE} WHERE key = ?",
                    (key,),
                ).fetchone()
        except sqlite3.Error as e:
            raise ReaderError(f"Failed to read key {key}: {e}") from e

        if row is None:
            return None
        return row[0]

    def list_conversation_ids(self, filters: ConversationFilters | None = None) -> list[str]:
        """List conversation IDs, most recently inserted first.

        Args:
            filters: Optional substring filters over the serialized value

        Returns:
            Conversation IDs ordered by descending ROWID

        Raises:
            ReaderError: If the query fails
        """
        if filters is None:
            filters = ConversationFilters()

        min_length = filters.min_length if filters.min_length is not None else self._min_conversation_size

        where = [
            "key LIKE ?",
            "length(value) > ?",
            # Only the modern record format carries a _v field
            """value LIKE '%"_v":%'""",
        ]
        params: list[str | int] = [f"{CONVERSATION_KEY_PREFIX}%", max(0, min_length)]

        if filters.project_path:
            project = filters.project_path
            where.append("(value LIKE ? OR value LIKE ? OR value LIKE ?)")
            params.append(f'%"attachedFoldersNew":[%"{project}%')
            params.append(f'%"relevantFiles":[%"{project}%')
            if project.startswith("/"):
                params.append(f'%"fsPath":"{project}%')
            else:
                # Bare project name: match it as a path segment
                params.append(f'%"fsPath":"%/{project}/%')

        if filters.file_pattern:
            where.append("value LIKE ?")
            params.append(f'%"relevantFiles":[%"{filters.file_pattern}%')

        if filters.relevant_files:
            where.append("(" + " OR ".join("value LIKE ?" for _ in filters.relevant_files) + ")")
            params.extend(f'%"relevantFiles":[%"{name}"%' for name in filters.relevant_files)

        if filters.has_code_blocks:
            where.append("""value LIKE '%"suggestedCodeBlocks":[%'""")

        if filters.keywords:
            where.append("(" + " OR ".join("value LIKE ?" for _ in filters.keywords) + ")")
            params.extend(f"%{keyword}%" for keyword in filters.keywords)

        params.append(self._max_conversations)
        sql = f"""
            SELECT key FROM {KV_TABLE}
            WHERE {' AND '.join(where)}
            ORDER BY ROWID DESC
            LIMIT ?
        """

        conn = self._connection()
        try:
            with self._lock:
                rows = conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise ReaderError(f"Failed to list conversation IDs: {e}") from e

        ids = [conversation_id_from_key(row[0]) for row in rows]
        return [conversation_id for conversation_id in ids if conversation_id]

    def get_conversation(self, conversation_id: str) -> ConversationRecord | None:
        """Fetch and decode one conversation record.

        Args:
            conversation_id: Composer ID

        Returns:
            ConversationRecord, or None if the conversation does not exist

        Raises:
            RecordParseError: If the stored value cannot be decoded
        """
        key = conversation_key(conversation_id)

        def load() -> ConversationRecord | None:
            raw = self.fetch_value(key)
            if raw is None:
                return None
            return parse_conversation_record(raw, key)

        return self._cache.get_or_load(("conversation", conversation_id), load)

    def __enter__(self) -> Self:
        """Enter context manager, opening the connection."""
        self.connect()
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        """Exit context manager, closing the connection."""
        self.close()
