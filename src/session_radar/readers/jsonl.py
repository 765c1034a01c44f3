"""Reader for Claude Code session logs.

Claude Code stores sessions as append-only JSONL files at:
    ~/.claude/projects/<encoded-project-path>/<session-id>.jsonl

Each line is a JSON object with:
- type: "user", "assistant", "summary" (other types are ignored)
- uuid / parentUuid: record identity, forming a tree consumed linearly
- sessionId: UUID session identifier
- timestamp: ISO 8601 timestamp
- cwd: Working directory (project path)
- message.role / message.content: string or array of content blocks
  (text, tool_use, tool_result)
- summary: summary text (summary records only)

Files are re-parsed in full on every poll; there is no incremental read.
"""

import json
import re
from datetime import datetime
from pathlib import Path
from typing import Any

from session_radar.errors import SourceUnavailableError
from session_radar.logging import get_logger
from session_radar.models import SessionSummary, TodoProgress, truncate_excerpt
from session_radar.readers.base import SessionSource, SummaryOptions
from session_radar.timeutil import activity_since, parse_iso_timestamp, utc_now

logger = get_logger("claude_code")

MESSAGE_TYPES = ("user", "assistant")
CODE_TOOLS = frozenset({"Write", "Edit", "MultiEdit"})
FILE_TOOLS = CODE_TOOLS | {"Read"}
TODO_TOOL = "TodoWrite"
TITLE_LENGTH = 60
FALLBACK_TITLE = "Claude Session"


def _content_blocks(record: dict[str, Any]) -> list[dict[str, Any]]:
    """Return a message's typed content blocks (empty for string content)."""
    message = record.get("message")
    if not isinstance(message, dict):
        return []
    content = message.get("content")
    if not isinstance(content, list):
        return []
    return [block for block in content if isinstance(block, dict)]


def _first_text(record: dict[str, Any] | None) -> str | None:
    """Return the first text of a message: string content or first text block."""
    if record is None:
        return None
    message = record.get("message")
    if not isinstance(message, dict):
        return None

    content = message.get("content")
    if isinstance(content, str):
        return content or None

    for block in _content_blocks(record):
        if block.get("type") == "text" and isinstance(block.get("text"), str) and block["text"]:
            return block["text"]
    return None


def _tool_uses(record: dict[str, Any]) -> list[dict[str, Any]]:
    return [block for block in _content_blocks(record) if block.get("type") == "tool_use"]


def make_title(summaries: list[dict[str, Any]], messages: list[dict[str, Any]]) -> str:
    """Pick a session title.

    Prefers the first summary record, then the first user message's text
    truncated to 60 characters, then a fixed fallback.
    """
    for summary in summaries:
        text = summary.get("summary")
        if isinstance(text, str) and text:
            return text

    first_user = next((m for m in messages if m.get("type") == "user"), None)
    text = _first_text(first_user)
    if text:
        title = text[:TITLE_LENGTH].strip()
        return title + ("..." if len(text) > TITLE_LENGTH else "")

    return FALLBACK_TITLE


def extract_todos(messages: list[dict[str, Any]]) -> TodoProgress:
    """Extract todo progress from the most recent TodoWrite call.

    Messages are scanned from the end; the first TodoWrite tool_use with a
    todos list is authoritative and earlier writes are ignored.
    """
    for record in reversed(messages):
        for block in _tool_uses(record):
            if block.get("name") != TODO_TOOL:
                continue
            tool_input = block.get("input")
            todos = tool_input.get("todos") if isinstance(tool_input, dict) else None
            if isinstance(todos, list):
                items = [todo for todo in todos if isinstance(todo, dict)]
                return TodoProgress.from_items(items, label="content")
    return TodoProgress()


def count_code_blocks(messages: list[dict[str, Any]]) -> int:
    """Count Write/Edit/MultiEdit tool calls across all messages."""
    return sum(
        1
        for record in messages
        for block in _tool_uses(record)
        if block.get("name") in CODE_TOOLS
    )


def extract_relevant_files(messages: list[dict[str, Any]]) -> list[str]:
    """Collect unique file paths touched by Write/Edit/MultiEdit/Read, in first-seen order."""
    files: dict[str, None] = {}
    for record in messages:
        for block in _tool_uses(record):
            if block.get("name") not in FILE_TOOLS:
                continue
            tool_input = block.get("input")
            file_path = tool_input.get("file_path") if isinstance(tool_input, dict) else None
            if isinstance(file_path, str) and file_path:
                files[file_path] = None
    return list(files)


def has_blocking_pending_actions(messages: list[dict[str, Any]]) -> bool:
    """Infer whether the session is waiting on a tool result or a response.

    Looks only at the last message:
    - assistant with a tool_use block: waiting for the tool result
    - assistant without tool_use: finished with a reply
    - user with a tool_result block: the assistant should respond next
    - user without tool_result: fresh input awaiting the assistant
    """
    if not messages:
        return False

    last = messages[-1]
    blocks = _content_blocks(last)

    if last.get("type") == "assistant":
        return any(block.get("type") == "tool_use" for block in blocks)

    if last.get("type") == "user":
        return True

    return False


def project_name_from_cwd(cwd: Any) -> str:
    """Use the last segment of the working directory as the project name."""
    if not isinstance(cwd, str):
        return "unknown"
    segments = [segment for segment in cwd.replace("\\", "/").split("/") if segment]
    return segments[-1] if segments else "unknown"


def extract_model(messages: list[dict[str, Any]]) -> str:
    """Return the model of the most recent assistant message."""
    for record in reversed(messages):
        if record.get("type") != "assistant":
            continue
        message = record.get("message")
        model = message.get("model") if isinstance(message, dict) else None
        if isinstance(model, str) and model:
            return model
    return "unknown"


def encode_project_dir(project_path: str) -> str:
    """Convert an absolute project path to Claude Code's directory name.

    Every non-alphanumeric character becomes a dash, e.g.
    /Users/me/code/my.app -> -Users-me-code-my-app
    """
    return re.sub(r"[^A-Za-z0-9]", "-", project_path)


class JsonlSessionReader(SessionSource):
    """Session source backed by Claude Code's JSONL session logs."""

    source_name = "claude_code"

    def __init__(self, projects_path: Path, max_sessions: int = 50) -> None:
        """Initialize the reader.

        Args:
            projects_path: Root directory holding one folder per project
            max_sessions: Upper bound on sessions parsed by recent_summaries
        """
        self._projects_path = Path(projects_path)
        self._max_sessions = max_sessions

    @property
    def projects_path(self) -> Path:
        return self._projects_path

    def is_available(self) -> bool:
        return self._projects_path.is_dir()

    def list_projects(self) -> list[str]:
        """List project directory names, skipping hidden entries."""
        if not self._projects_path.is_dir():
            return []

        return sorted(
            entry.name
            for entry in self._projects_path.iterdir()
            if entry.is_dir() and not entry.name.startswith(".")
        )

    def _mtime(self, path: Path) -> float | None:
        try:
            return path.stat().st_mtime
        except OSError as e:
            logger.warning("Failed to stat session file: path=%s error=%s", path, e)
            return None

    def _files_by_mtime(self, paths: list[Path]) -> list[Path]:
        stamped = [(path, self._mtime(path)) for path in paths]
        stamped = [(path, mtime) for path, mtime in stamped if mtime is not None]
        stamped.sort(key=lambda item: item[1], reverse=True)
        return [path for path, _ in stamped]

    def list_session_files(self, project: str) -> list[Path]:
        """List a project's session files, newest modification first."""
        project_path = self._projects_path / project
        if not project_path.is_dir():
            return []
        return self._files_by_mtime(list(project_path.glob("*.jsonl")))

    def _read_records(self, path: Path) -> list[dict[str, Any]] | None:
        try:
            with open(path, "rb") as f:
                data = f.read()
        except OSError as e:
            logger.warning("Failed to read session file: path=%s error=%s", path, e)
            return None

        records: list[dict[str, Any]] = []
        for line in data.decode("utf-8", errors="replace").splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError:
                # Partial writes at the tail of an active file
                continue
            if isinstance(record, dict):
                records.append(record)
        return records

    def parse_session_file(
        self,
        path: Path,
        options: SummaryOptions | None = None,
        now: datetime | None = None,
    ) -> SessionSummary | None:
        """Parse one session log into a summary.

        Args:
            path: Path to the JSONL file
            options: Excerpt lengths and optional fields (defaults: everything
                included with 250-byte excerpts)
            now: Reference time for last-activity fields

        Returns:
            SessionSummary, or None if the file is unreadable or holds no
            user/assistant messages
        """
        if options is None:
            options = SummaryOptions(
                include_first_message=True,
                include_last_message=True,
                include_code_block_count=True,
                include_file_list=True,
                include_attached_folders=True,
                include_stored_summary=True,
            )

        records = self._read_records(path)
        if records is None:
            return None

        try:
            return self._summarize_records(path, records, options, now)
        except Exception:
            logger.exception("Failed to summarize session file: path=%s", path)
            return None

    def _summarize_records(
        self,
        path: Path,
        records: list[dict[str, Any]],
        options: SummaryOptions,
        now: datetime | None,
    ) -> SessionSummary | None:
        summaries = [r for r in records if r.get("type") == "summary"]
        messages = [r for r in records if r.get("type") in MESSAGE_TYPES]
        if not messages:
            return None

        first = messages[0]
        last = messages[-1]

        session_id = first.get("sessionId")
        if not isinstance(session_id, str) or not session_id:
            session_id = path.stem

        cwd = first.get("cwd")
        last_activity_at = parse_iso_timestamp(last.get("timestamp"))
        label, ms_ago = activity_since(last_activity_at, now)
        code_block_count = count_code_blocks(messages)

        first_user = next((m for m in messages if m.get("type") == "user"), None)
        first_message = _first_text(first_user)
        last_message = _first_text(last)

        stored_summary = summaries[0].get("summary") if summaries else None

        try:
            conversation_size = path.stat().st_size
        except OSError:
            conversation_size = 0

        return SessionSummary(
            session_id=session_id,
            source=self.source_name,
            project_name=project_name_from_cwd(cwd),
            title=make_title(summaries, messages),
            first_message=(
                truncate_excerpt(first_message, options.max_first_message_length)
                if options.include_first_message
                else None
            ),
            last_message=(
                truncate_excerpt(last_message, options.max_last_message_length)
                if options.include_last_message
                else None
            ),
            message_count=len(messages),
            code_block_count=code_block_count,
            has_code_changes=code_block_count > 0,
            relevant_files=extract_relevant_files(messages) if options.include_file_list else [],
            attached_folders=[cwd] if options.include_attached_folders and isinstance(cwd, str) and cwd else [],
            todos=extract_todos(messages),
            last_activity_at=last_activity_at,
            last_activity_time=label,
            last_activity_ms_ago=ms_ago,
            has_blocking_pending_actions=has_blocking_pending_actions(messages),
            stored_summary=(
                stored_summary
                if options.include_stored_summary and isinstance(stored_summary, str)
                else None
            ),
            model=extract_model(messages),
            conversation_size=conversation_size,
        )

    def recent_summaries(self, limit: int, options: SummaryOptions) -> list[SessionSummary]:
        """Parse the most recently modified sessions across all projects.

        Raises:
            SourceUnavailableError: If the projects directory does not exist
        """
        limit = min(limit, self._max_sessions)
        if limit <= 0:
            return []

        if not self.is_available():
            raise SourceUnavailableError(
                self.source_name, f"projects directory not found: {self._projects_path}"
            )

        paths: list[Path] = []
        for project in self.list_projects():
            paths.extend((self._projects_path / project).glob("*.jsonl"))

        now = utc_now()
        summaries: list[SessionSummary] = []
        for path in self._files_by_mtime(paths)[:limit]:
            summary = self.parse_session_file(path, options, now)
            if summary is not None:
                summaries.append(summary)

        logger.debug("Parsed session files: candidates=%d produced=%d", len(paths), len(summaries))
        return summaries

    def sessions_for_project(
        self,
        project_path: str,
        options: SummaryOptions | None = None,
    ) -> list[SessionSummary]:
        """Summarize every session recorded for an absolute project path."""
        summaries: list[SessionSummary] = []
        for path in self.list_session_files(encode_project_dir(project_path)):
            summary = self.parse_session_file(path, options)
            if summary is not None:
                summaries.append(summary)
        return summaries
