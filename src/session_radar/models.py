"""Canonical data models."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from session_radar.timeutil import activity_since

# Role identifiers used by conversation headers
ROLE_USER = 1
ROLE_ASSISTANT = 2

# Sessions with activity more recent than this are shown as active
ACTIVE_WINDOW_MS = 60_000

STATUS_ACTIVE = "active"
STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"

# Cursor marks running todos "active", Claude Code marks them "in_progress"
IN_PROGRESS_TODO_STATUSES = frozenset({"active", "in_progress"})


@dataclass(frozen=True)
class ConversationHeader:
    """One entry of a conversation's ordered message header list."""

    message_id: str
    role: int  # 1 = user, 2 = assistant


@dataclass(frozen=True)
class TodoItem:
    """A unit of work tracked by the agent."""

    content: str
    status: str  # completed, active, pending
    id: str | None = None


@dataclass(frozen=True)
class ConversationRecord:
    """A decoded composerData record from the key-value store."""

    version: int
    conversation_id: str
    headers: tuple[ConversationHeader, ...]
    title: str | None = None
    code_block_data: dict[str, Any] = field(default_factory=dict, hash=False)
    lines_added: int = 0
    lines_removed: int = 0
    todos: tuple[TodoItem, ...] = ()
    has_blocking_pending_actions: bool = False
    stored_summary: str | None = None
    model_name: str | None = None
    size: int = 0


@dataclass(frozen=True)
class MessageRecord:
    """A decoded bubble record: one message of a conversation."""

    message_id: str
    role: int
    text: str = ""
    relevant_files: tuple[str, ...] = ()
    attached_folders: tuple[str, ...] = ()
    suggested_code_blocks: tuple[Any, ...] = ()
    created_at: str = ""


@dataclass(frozen=True)
class TodoProgress:
    """Todo completion counters for a session."""

    completed: int = 0
    total: int = 0
    first_in_progress: str | None = None

    @classmethod
    def from_items(cls, items: list[dict] | tuple[TodoItem, ...], label: str = "id") -> "TodoProgress":
        """Count todos and pick the first in-progress item.

        Args:
            items: TodoItem instances or raw todo dicts
            label: Which attribute names the in-progress item ('id' or 'content')

        Returns:
            TodoProgress for the list
        """
        completed = 0
        first_in_progress = None
        for item in items:
            if isinstance(item, dict):
                status = item.get("status")
                value = item.get(label)
            else:
                status = item.status
                value = getattr(item, label)

            if status == "completed":
                completed += 1
            elif first_in_progress is None and status in IN_PROGRESS_TODO_STATUSES:
                first_in_progress = value if value else None

        return cls(completed=completed, total=len(items), first_in_progress=first_in_progress)


def derive_status(
    ms_ago: int,
    has_pending_actions: bool,
    todos: TodoProgress,
) -> str:
    """Derive the UI status of a session.

    A session is active when its last activity is under a minute old, or
    when it is waiting on a pending action. Unknown activity reports 0 ms
    and therefore counts as recent. Otherwise it is pending while todos
    remain open, and completed once they are all done.
    """
    if ms_ago < ACTIVE_WINDOW_MS or has_pending_actions:
        return STATUS_ACTIVE
    if todos.completed < todos.total:
        return STATUS_PENDING
    return STATUS_COMPLETED


def truncate_excerpt(text: str | None, max_bytes: int) -> str | None:
    """Truncate text to at most max_bytes of UTF-8 without splitting a character."""
    if text is None:
        return None
    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text
    return encoded[:max_bytes].decode("utf-8", errors="ignore")


@dataclass
class SessionSummary:
    """Source-agnostic summary of one session or conversation."""

    session_id: str
    source: str  # cursor, claude_code
    project_name: str = "unknown"
    title: str | None = None
    first_message: str | None = None
    last_message: str | None = None
    message_count: int = 0
    code_block_count: int = 0
    has_code_changes: bool = False
    relevant_files: list[str] = field(default_factory=list)
    attached_folders: list[str] = field(default_factory=list)
    lines_added: int = 0
    lines_removed: int = 0
    todos: TodoProgress = field(default_factory=TodoProgress)
    last_activity_at: datetime | None = None
    last_activity_time: str = "unknown"
    last_activity_ms_ago: int = 0
    has_blocking_pending_actions: bool = False
    stored_summary: str | None = None
    model: str = "unknown"
    conversation_size: int = 0

    @property
    def is_activity_known(self) -> bool:
        """Whether the last-activity time came from a parseable timestamp."""
        return self.last_activity_at is not None

    @property
    def status(self) -> str:
        """Derived UI status: active, pending, or completed."""
        return derive_status(
            self.last_activity_ms_ago,
            self.has_blocking_pending_actions,
            self.todos,
        )

    @property
    def id(self) -> str:
        """Stable unique ID across sources."""
        return f"{self.source}:{self.session_id}"

    def refreshed(self, now: datetime | None = None) -> "SessionSummary":
        """Return a copy with time-derived fields recomputed against now."""
        label, ms_ago = activity_since(self.last_activity_at, now)
        return replace(
            self,
            relevant_files=list(self.relevant_files),
            attached_folders=list(self.attached_folders),
            last_activity_time=label,
            last_activity_ms_ago=ms_ago,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable document."""
        return {
            "id": self.id,
            "session_id": self.session_id,
            "source": self.source,
            "project_name": self.project_name,
            "title": self.title,
            "first_message": self.first_message,
            "last_message": self.last_message,
            "message_count": self.message_count,
            "code_block_count": self.code_block_count,
            "has_code_changes": self.has_code_changes,
            "relevant_files": list(self.relevant_files),
            "attached_folders": list(self.attached_folders),
            "lines_added": self.lines_added,
            "lines_removed": self.lines_removed,
            "todos": {
                "completed": self.todos.completed,
                "total": self.todos.total,
                "first_in_progress": self.todos.first_in_progress,
            },
            "last_activity_at": self.last_activity_at.isoformat() if self.last_activity_at else None,
            "last_activity_time": self.last_activity_time,
            "last_activity_ms_ago": self.last_activity_ms_ago,
            "has_blocking_pending_actions": self.has_blocking_pending_actions,
            "stored_summary": self.stored_summary,
            "model": self.model,
            "conversation_size": self.conversation_size,
            "status": self.status,
        }
