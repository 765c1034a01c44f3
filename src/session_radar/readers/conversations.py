"""Summaries of Cursor composer conversations.

A conversation record only carries an ordered header list; message text,
file references and timestamps live in separate bubble records that are
resolved on demand (see MessageResolver).
"""

from collections.abc import Iterable
from datetime import datetime

from session_radar.cache import LookupCache
from session_radar.errors import StoreConnectionError, SourceUnavailableError
from session_radar.logging import get_logger
from session_radar.models import (
    ConversationRecord,
    SessionSummary,
    TodoProgress,
    truncate_excerpt,
)
from session_radar.readers.base import SessionSource, SummaryOptions
from session_radar.readers.kv_store import ConversationFilters, KeyValueStore
from session_radar.readers.messages import MessageResolver
from session_radar.timeutil import activity_since, parse_iso_timestamp, utc_now

logger = get_logger("cursor")

# Path segments that never name a project
GENERIC_SEGMENTS = frozenset({
    "src",
    "dist",
    "build",
    "out",
    "lib",
    "node_modules",
    "tests",
    "test",
    "__pycache__",
    "venv",
})


def _split_path(path: str) -> list[str]:
    if path.startswith("file://"):
        path = path[len("file://"):]
    return [segment for segment in path.replace("\\", "/").split("/") if segment]


def infer_project_name(paths: Iterable[str]) -> str | None:
    """Infer a project name from the paths a conversation references.

    Takes the longest common segment prefix of all paths and walks it from
    the deepest segment upward, returning the first segment that is neither
    generic (src, build, ...) nor contains a dot (a file name).

    Args:
        paths: File and folder paths referenced by the conversation

    Returns:
        Project name, or None if no suitable segment exists
    """
    split_paths = [_split_path(p) for p in set(paths) if p]
    split_paths = [p for p in split_paths if p]
    if not split_paths:
        return None

    common: list[str] = []
    for segments in zip(*split_paths):
        if all(segment == segments[0] for segment in segments):
            common.append(segments[0])
        else:
            break

    for segment in reversed(common):
        if segment not in GENERIC_SEGMENTS and "." not in segment:
            return segment

    return None


class ConversationSummarizer:
    """Turns a ConversationRecord into a SessionSummary."""

    def __init__(self, resolver: MessageResolver, resolve_messages: bool = True) -> None:
        """Initialize the summarizer.

        Args:
            resolver: Message resolver backed by the same store
            resolve_messages: When False, never resolve messages for excerpts,
                files or code blocks regardless of the requested options
        """
        self._resolver = resolver
        self._resolve_messages = resolve_messages

    def last_activity(self, record: ConversationRecord) -> datetime | None:
        """Timestamp of the conversation's final message, if parseable."""
        last = self._resolver.last_message(record)
        if last is None:
            return None
        return parse_iso_timestamp(last.created_at)

    def summarize(
        self,
        record: ConversationRecord,
        options: SummaryOptions,
        now: datetime | None = None,
    ) -> SessionSummary:
        """Summarize one conversation.

        Args:
            record: Decoded conversation record
            options: Which expensive fields to compute
            now: Reference time for last-activity fields (defaults to now)

        Returns:
            SessionSummary tagged with the cursor source
        """
        code_block_count = 0
        relevant_files: dict[str, None] = {}
        attached_folders: dict[str, None] = {}
        first_message: str | None = None
        last_message: str | None = None

        if options.needs_message_resolution and self._resolve_messages:
            for message in self._resolver.resolve(record):
                code_block_count += len(message.suggested_code_blocks)
                relevant_files.update(dict.fromkeys(message.relevant_files))
                attached_folders.update(dict.fromkeys(message.attached_folders))

                if not first_message:
                    first_message = message.text
                last_message = message.text

        referenced = [*record.code_block_data.keys(), *relevant_files, *attached_folders]
        project_name = infer_project_name(referenced) or "unknown"

        last_activity_at = self.last_activity(record)
        label, ms_ago = activity_since(last_activity_at, now)

        return SessionSummary(
            session_id=record.conversation_id,
            source=CursorSource.source_name,
            project_name=project_name,
            title=record.title if options.include_title else None,
            first_message=(
                truncate_excerpt(first_message, options.max_first_message_length)
                if options.include_first_message and first_message
                else None
            ),
            last_message=(
                truncate_excerpt(last_message, options.max_last_message_length)
                if options.include_last_message and last_message
                else None
            ),
            message_count=len(record.headers),
            code_block_count=code_block_count if options.include_code_block_count else 0,
            has_code_changes=code_block_count > 0 or bool(record.code_block_data),
            relevant_files=list(relevant_files) if options.include_file_list else [],
            attached_folders=list(attached_folders) if options.include_attached_folders else [],
            lines_added=record.lines_added,
            lines_removed=record.lines_removed,
            todos=TodoProgress.from_items(record.todos, label="id"),
            last_activity_at=last_activity_at,
            last_activity_time=label,
            last_activity_ms_ago=ms_ago,
            has_blocking_pending_actions=record.has_blocking_pending_actions,
            stored_summary=record.stored_summary if options.include_stored_summary else None,
            model=record.model_name or "unknown",
            conversation_size=record.size,
        )


class CursorSource(SessionSource):
    """Session source backed by Cursor's key-value store."""

    source_name = "cursor"

    def __init__(
        self,
        store: KeyValueStore,
        resolve_messages: bool = True,
        filters: ConversationFilters | None = None,
    ) -> None:
        self._store = store
        self._resolver = MessageResolver(store)
        self._summarizer = ConversationSummarizer(self._resolver, resolve_messages)
        self._filters = filters
        self._summaries = LookupCache()

    @property
    def store(self) -> KeyValueStore:
        return self._store

    def connect(self) -> None:
        """Open the underlying store.

        Raises:
            StoreConnectionError: If the store cannot be opened
        """
        self._store.connect()

    def is_available(self) -> bool:
        return self._store.is_connected

    def summarize(
        self,
        conversation_id: str,
        options: SummaryOptions,
        now: datetime | None = None,
    ) -> SessionSummary | None:
        """Summarize one conversation, reusing a previously built summary.

        Args:
            conversation_id: Composer ID
            options: Which expensive fields to compute
            now: Reference time for last-activity fields

        Returns:
            SessionSummary, or None if the conversation does not exist

        Raises:
            RecordParseError: If the conversation record cannot be decoded
        """
        cache_key = (conversation_id, options)
        generation = self._summaries.generation
        cached = self._summaries.get(cache_key)
        if cached is not None:
            return cached.refreshed(now)

        record = self._store.get_conversation(conversation_id)
        if record is None:
            return None

        summary = self._summarizer.summarize(record, options, now)
        self._summaries.put_if_absent(cache_key, summary, generation)
        return summary.refreshed(now)

    def recent_summaries(self, limit: int, options: SummaryOptions) -> list[SessionSummary]:
        """Summarize the most recently inserted conversations.

        A conversation that fails to summarize is logged and left out; the
        others are still returned.

        Raises:
            SourceUnavailableError: If the store cannot be opened
        """
        if limit <= 0:
            return []

        if not self._store.is_connected:
            try:
                self._store.connect()
            except StoreConnectionError as e:
                raise SourceUnavailableError(self.source_name, str(e)) from e

        conversation_ids = self._store.list_conversation_ids(self._filters)[:limit]
        now = utc_now()

        summaries: list[SessionSummary] = []
        for conversation_id in conversation_ids:
            try:
                summary = self.summarize(conversation_id, options, now)
            except Exception:
                logger.exception("Failed to summarize conversation: id=%s", conversation_id)
                continue
            if summary is not None:
                summaries.append(summary)

        logger.debug("Summarized conversations: requested=%d produced=%d", len(conversation_ids), len(summaries))
        return summaries

    def clear_cache(self) -> None:
        self._store.clear_cache()
        self._summaries.clear()

    def close(self) -> None:
        self._store.close()
        self._summaries.clear()
