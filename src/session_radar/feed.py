"""Merged, recency-ranked feed of sessions from every configured source.

SessionFeed is the boundary exposed to presentation layers: it never raises
from a query, reporting unreachable sources as warning strings next to
whatever data the other sources produced.
"""

import sys
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Self

from session_radar.config import Config
from session_radar.errors import SourceUnavailableError, StoreConnectionError
from session_radar.logging import get_logger
from session_radar.models import SessionSummary
from session_radar.readers import (
    CursorSource,
    JsonlSessionReader,
    KeyValueStore,
    SessionSource,
    SummaryOptions,
)
from session_radar.watcher import ChangeWatcher

logger = get_logger("feed")

UNTITLED = "Untitled conversation"
FALLBACK_TITLE_LENGTH = 50


@dataclass
class FeedResult:
    """Ranked summaries plus one warning per source that could not be read."""

    data: list[SessionSummary] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": [summary.to_dict() for summary in self.data],
            "warnings": list(self.warnings),
        }


def recency_key(summary: SessionSummary) -> int:
    """Sort key: elapsed milliseconds, with unknown activity ranked last."""
    if not summary.is_activity_known:
        return sys.maxsize
    return summary.last_activity_ms_ago


def merge_and_rank(batches: Iterable[list[SessionSummary]], limit: int) -> list[SessionSummary]:
    """Concatenate per-source batches, sort most recent first, and truncate.

    The sort is stable, so summaries with equal recency keep source order.
    """
    merged = [summary for batch in batches for summary in batch]
    merged.sort(key=recency_key)
    return merged[: max(0, limit)]


def with_fallback_title(summary: SessionSummary) -> SessionSummary:
    """Fill a missing title from the first message excerpt."""
    if summary.title:
        return summary
    if summary.first_message:
        return replace(summary, title=summary.first_message[:FALLBACK_TITLE_LENGTH])
    return replace(summary, title=UNTITLED)


def options_from_config(config: Config) -> SummaryOptions:
    """Summary options used by the feed."""
    return SummaryOptions(
        include_first_message=True,
        include_last_message=True,
        max_first_message_length=config.feed.first_message_length,
        max_last_message_length=config.feed.last_message_length,
        include_title=True,
        include_code_block_count=True,
        include_file_list=True,
        include_attached_folders=True,
    )


class SessionFeed:
    """Queries every source and merges the results into one ranked list."""

    def __init__(
        self,
        sources: list[SessionSource],
        options: SummaryOptions | None = None,
        default_limit: int = 20,
    ) -> None:
        self._sources = list(sources)
        self._options = options or SummaryOptions(
            include_first_message=True,
            include_last_message=True,
            include_code_block_count=True,
            include_file_list=True,
        )
        self._default_limit = default_limit
        self._callbacks: list[Callable[[], None]] = []
        self._callbacks_lock = threading.Lock()
        self._watcher: ChangeWatcher | None = None
        self._closed = False

    @classmethod
    def initialize(cls, config: Config, require_store: bool = False) -> "SessionFeed":
        """Build a feed from configuration.

        Args:
            config: Application configuration
            require_store: Raise instead of continuing when the Cursor store
                cannot be opened

        Returns:
            SessionFeed with every enabled source

        Raises:
            StoreConnectionError: If require_store is set and the store
                cannot be opened
        """
        sources: list[SessionSource] = []

        if config.cursor.enabled:
            store = KeyValueStore(
                config.cursor.db_path,
                min_conversation_size=config.cursor.min_conversation_size,
                max_conversations=config.cursor.max_conversations,
            )
            cursor = CursorSource(store, resolve_messages=config.cursor.resolve_messages)
            try:
                cursor.connect()
            except StoreConnectionError as e:
                if require_store:
                    raise
                logger.warning("Cursor store unavailable, will retry on query: %s", e)
            sources.append(cursor)

        if config.claude_code.enabled:
            sources.append(
                JsonlSessionReader(
                    config.claude_code.projects_path,
                    max_sessions=config.claude_code.max_sessions,
                )
            )

        feed = cls(sources, options_from_config(config), default_limit=config.feed.limit)

        if config.cursor.enabled and config.watcher.enabled:
            feed.watch(config.cursor.db_path, retry_seconds=config.watcher.retry_seconds)

        logger.info(
            "Session feed initialized: sources=%s watcher=%s",
            ",".join(source.source_name for source in sources),
            feed._watcher is not None,
        )
        return feed

    @property
    def sources(self) -> list[SessionSource]:
        return list(self._sources)

    @property
    def watcher(self) -> ChangeWatcher | None:
        return self._watcher

    def watch(self, path: Path, retry_seconds: float = 5.0) -> ChangeWatcher:
        """Start watching the key-value store file for changes."""
        if self._watcher is not None:
            self._watcher.stop()
        self._watcher = ChangeWatcher(path, self._handle_change, retry_seconds=retry_seconds)
        self._watcher.start()
        return self._watcher

    def _handle_change(self) -> None:
        logger.info("Source data changed, clearing caches")
        self.clear_cache()

        with self._callbacks_lock:
            callbacks = list(self._callbacks)

        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Data-changed callback failed")

    def on_data_changed(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback fired once per detected store change.

        Returns:
            Function that unregisters the callback
        """
        with self._callbacks_lock:
            self._callbacks.append(callback)

        def unregister() -> None:
            with self._callbacks_lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)

        return unregister

    def get_recent_sessions(self, limit: int | None = None) -> FeedResult:
        """Return the most recent sessions across all sources.

        Each source contributes at most limit // 2 summaries. A failing
        source adds one warning naming it; the other sources' data is
        still returned.
        """
        if limit is None:
            limit = self._default_limit
        limit = max(0, limit)

        if self._closed:
            return FeedResult(warnings=["session feed is closed"])

        per_source = limit // 2
        batches: list[list[SessionSummary]] = []
        warnings: list[str] = []

        for source in self._sources:
            try:
                summaries = source.recent_summaries(per_source, self._options)
            except SourceUnavailableError as e:
                logger.warning("Source unavailable: %s", e)
                warnings.append(str(e))
                continue
            except Exception as e:
                logger.exception("Failed to read source: source=%s", source.source_name)
                warnings.append(f"{source.source_name}: {e}")
                continue

            batches.append([
                with_fallback_title(replace(summary, source=source.source_name))
                for summary in summaries[:per_source]
            ])

        data = merge_and_rank(batches, limit)
        logger.debug("Feed query complete: limit=%d returned=%d warnings=%d", limit, len(data), len(warnings))
        return FeedResult(data=data, warnings=warnings)

    def clear_cache(self) -> None:
        """Drop cached records and summaries in every source."""
        for source in self._sources:
            source.clear_cache()

    def close(self) -> None:
        """Stop the watcher and release every source. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True

        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None

        for source in self._sources:
            try:
                source.close()
            except Exception:
                logger.exception("Failed to close source: source=%s", source.source_name)

        with self._callbacks_lock:
            self._callbacks.clear()

        logger.info("Session feed closed")

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        self.close()
