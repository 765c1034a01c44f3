"""Base session source interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from session_radar.models import SessionSummary

__all__ = ["SessionSource", "SessionSummary", "SummaryOptions"]


@dataclass(frozen=True)
class SummaryOptions:
    """Which parts of a summary to compute.

    Resolving individual messages is the dominant cost when summarizing a
    key-value conversation, so each expensive field is opt-in. A field that
    was not requested is reported as None (excerpts) or empty (lists) rather
    than as an empty value computed from nothing.
    """

    include_first_message: bool = False
    include_last_message: bool = False
    max_first_message_length: int = 250
    max_last_message_length: int = 250
    include_title: bool = True
    include_code_block_count: bool = False
    include_file_list: bool = False
    include_attached_folders: bool = False
    include_stored_summary: bool = False

    @property
    def needs_message_resolution(self) -> bool:
        """Whether any requested field requires resolving every message."""
        return (
            self.include_first_message
            or self.include_last_message
            or self.include_code_block_count
            or self.include_file_list
        )


class SessionSource(ABC):
    """Base class for session sources.

    Subclasses must set the `source_name` class attribute and implement
    `recent_summaries()` to produce normalized SessionSummary instances.
    """

    source_name: str

    @abstractmethod
    def recent_summaries(self, limit: int, options: SummaryOptions) -> list[SessionSummary]:
        """Summarize up to `limit` of the source's most recent sessions.

        Args:
            limit: Maximum number of summaries to return
            options: Which summary fields to compute

        Returns:
            Summaries tagged with this source's name

        Raises:
            SourceUnavailableError: If the whole source cannot be read
        """

    def is_available(self) -> bool:
        """Whether the source can currently be queried."""
        return True

    def clear_cache(self) -> None:
        """Drop any cached records or summaries."""

    def close(self) -> None:
        """Release held resources. Safe to call more than once."""
