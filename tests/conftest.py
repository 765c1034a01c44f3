"""Shared fixtures: on-disk Cursor key-value stores and Claude Code session logs."""

import json
import os
import sqlite3
from pathlib import Path
from typing import Any

import pytest


class KvStoreBuilder:
    """Writes a cursorDiskKV table the way Cursor lays it out."""

    def __init__(self, path: Path) -> None:
        self.path = path
        with sqlite3.connect(path) as conn:
            conn.execute(
                "CREATE TABLE IF NOT EXISTS cursorDiskKV "
                "(key TEXT UNIQUE ON CONFLICT REPLACE, value BLOB)"
            )

    def put(self, key: str, value: dict[str, Any] | str) -> None:
        """Insert one raw row; dicts are serialized as compact JSON."""
        if isinstance(value, dict):
            value = json.dumps(value, separators=(",", ":"))
        with sqlite3.connect(self.path) as conn:
            conn.execute("INSERT INTO cursorDiskKV (key, value) VALUES (?, ?)", (key, value))

    def add_conversation(
        self,
        conversation_id: str,
        messages: list[dict[str, Any]] | None = None,
        **fields: Any,
    ) -> list[str]:
        """Insert a conversation and its messages; returns the message IDs.

        Messages are written before the conversation record so that the
        conversation row's ROWID reflects its insertion order.
        """
        messages = messages or []
        message_ids = []
        for index, message in enumerate(messages):
            message_id = message.get("bubbleId", f"{conversation_id}-m{index}")
            message_ids.append(message_id)
            self.put(f"bubbleId:{conversation_id}:{message_id}", {"bubbleId": message_id, **message})

        record = {
            "_v": 3,
            "composerId": conversation_id,
            "fullConversationHeadersOnly": [
                {"bubbleId": message_id, "type": message.get("type", 1)}
                for message_id, message in zip(message_ids, messages)
            ],
            # Keeps small test records above the minimum conversation size
            "richText": "x" * 120,
        }
        record.update(fields)
        self.put(f"composerData:{conversation_id}", record)
        return message_ids


class SessionLogBuilder:
    """Writes Claude Code JSONL session files under a projects directory."""

    def __init__(self, projects_path: Path) -> None:
        self.projects_path = projects_path
        self.projects_path.mkdir(parents=True, exist_ok=True)

    def write(
        self,
        project: str,
        session_id: str,
        records: list[dict[str, Any] | str],
        mtime: float | None = None,
    ) -> Path:
        """Write one session file; string records are written verbatim."""
        project_dir = self.projects_path / project
        project_dir.mkdir(parents=True, exist_ok=True)
        path = project_dir / f"{session_id}.jsonl"
        lines = [r if isinstance(r, str) else json.dumps(r) for r in records]
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        if mtime is not None:
            os.utime(path, (mtime, mtime))
        return path


def user_record(
    text: str | list[dict[str, Any]],
    timestamp: str = "2026-01-26T00:38:34.754Z",
    session_id: str = "session-1",
    cwd: str = "/home/user/project",
) -> dict[str, Any]:
    return {
        "type": "user",
        "sessionId": session_id,
        "cwd": cwd,
        "timestamp": timestamp,
        "message": {"role": "user", "content": text},
    }


def assistant_record(
    content: list[dict[str, Any]],
    timestamp: str = "2026-01-26T00:38:38.771Z",
    session_id: str = "session-1",
    cwd: str = "/home/user/project",
    model: str = "claude-sonnet-4-5",
) -> dict[str, Any]:
    return {
        "type": "assistant",
        "sessionId": session_id,
        "cwd": cwd,
        "timestamp": timestamp,
        "message": {"role": "assistant", "model": model, "content": content},
    }


@pytest.fixture
def kv_builder(tmp_path: Path) -> KvStoreBuilder:
    """Create an empty Cursor key-value store on disk."""
    return KvStoreBuilder(tmp_path / "state.vscdb")


@pytest.fixture
def session_logs(tmp_path: Path) -> SessionLogBuilder:
    """Create an empty Claude Code projects directory."""
    return SessionLogBuilder(tmp_path / "projects")


@pytest.fixture
def make_user_record():
    """Factory for Claude Code user records."""
    return user_record


@pytest.fixture
def make_assistant_record():
    """Factory for Claude Code assistant records."""
    return assistant_record
