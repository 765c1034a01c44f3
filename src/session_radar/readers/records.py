"""Parse-and-validate functions for key-value store records.

The Cursor store keeps schema-free JSON blobs. Each function here decodes
one blob, checks the fields the summarizer depends on, and returns an
immutable record, or raises RecordParseError describing what was wrong.
"""

import json
from typing import Any

from session_radar.errors import RecordParseError
from session_radar.models import (
    ConversationHeader,
    ConversationRecord,
    MessageRecord,
    TodoItem,
)

CONVERSATION_KEY_PREFIX = "composerData:"
MESSAGE_KEY_PREFIX = "bubbleId:"


def conversation_key(conversation_id: str) -> str:
    """Build the store key of a conversation record."""
    return f"{CONVERSATION_KEY_PREFIX}{conversation_id}"


def message_key(conversation_id: str, message_id: str) -> str:
    """Build the store key of a message record."""
    return f"{MESSAGE_KEY_PREFIX}{conversation_id}:{message_id}"


def conversation_id_from_key(key: str) -> str | None:
    """Extract the conversation ID from a composerData key."""
    if not key.startswith(CONVERSATION_KEY_PREFIX):
        return None
    return key[len(CONVERSATION_KEY_PREFIX):] or None


def _decode(raw: str | bytes, key: str) -> dict[str, Any]:
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise RecordParseError(key, f"invalid UTF-8: {e}") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise RecordParseError(key, f"invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise RecordParseError(key, f"expected an object, got {type(data).__name__}")
    return data


def _string_list(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(item for item in value if isinstance(item, str) and item)


def _int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return 0


def _parse_header(raw_header: Any, key: str) -> ConversationHeader:
    if not isinstance(raw_header, dict):
        raise RecordParseError(key, "conversation header is not an object")

    message_id = raw_header.get("bubbleId")
    role = raw_header.get("type")
    if not isinstance(message_id, str) or not isinstance(role, int):
        raise RecordParseError(key, "conversation header lacks bubbleId/type")

    return ConversationHeader(message_id=message_id, role=role)


def _parse_todos(raw_todos: Any) -> tuple[TodoItem, ...]:
    if not isinstance(raw_todos, list):
        return ()

    todos: list[TodoItem] = []
    for raw_todo in raw_todos:
        if not isinstance(raw_todo, dict):
            continue
        todo_id = raw_todo.get("id")
        todos.append(
            TodoItem(
                content=str(raw_todo.get("content", "")),
                status=str(raw_todo.get("status", "pending")),
                id=todo_id if isinstance(todo_id, str) else None,
            )
        )
    return tuple(todos)


def parse_conversation_record(raw: str | bytes, key: str) -> ConversationRecord:
    """Decode and validate a composerData value.

    Args:
        raw: Serialized JSON value from the store
        key: Store key, used for error reporting

    Returns:
        Validated ConversationRecord

    Raises:
        RecordParseError: If the value is not JSON or lacks the required
            composerId, _v, or fullConversationHeadersOnly fields
    """
    data = _decode(raw, key)

    conversation_id = data.get("composerId")
    version = data.get("_v")
    raw_headers = data.get("fullConversationHeadersOnly")

    if not isinstance(conversation_id, str):
        raise RecordParseError(key, "missing composerId")
    if not isinstance(version, int):
        raise RecordParseError(key, "missing format version")
    if not isinstance(raw_headers, list):
        raise RecordParseError(key, "missing conversation headers")

    headers = tuple(_parse_header(h, key) for h in raw_headers)

    code_block_data = data.get("codeBlockData")
    model_config = data.get("modelConfig")
    title = data.get("name")
    stored_summary = data.get("text")

    return ConversationRecord(
        version=version,
        conversation_id=conversation_id,
        headers=headers,
        title=title if isinstance(title, str) and title else None,
        code_block_data=code_block_data if isinstance(code_block_data, dict) else {},
        lines_added=_int(data.get("totalLinesAdded")),
        lines_removed=_int(data.get("totalLinesRemoved")),
        todos=_parse_todos(data.get("todos")),
        has_blocking_pending_actions=bool(data.get("hasBlockingPendingActions", False)),
        stored_summary=stored_summary if isinstance(stored_summary, str) and stored_summary else None,
        model_name=model_config.get("modelName") if isinstance(model_config, dict) else None,
        size=len(raw) if isinstance(raw, bytes) else len(raw.encode("utf-8")),
    )


def parse_message_record(raw: str | bytes, key: str, message_id: str) -> MessageRecord:
    """Decode and validate a bubble value.

    Args:
        raw: Serialized JSON value from the store
        key: Store key, used for error reporting
        message_id: Message ID the record was fetched under

    Returns:
        Validated MessageRecord

    Raises:
        RecordParseError: If the value is not a JSON object with a numeric type
    """
    data = _decode(raw, key)

    role = data.get("type")
    if not isinstance(role, int):
        raise RecordParseError(key, "missing message type")

    text = data.get("text")
    created_at = data.get("createdAt")
    code_blocks = data.get("suggestedCodeBlocks")

    # Newer records use attachedFoldersNew; older ones only attachedFolders
    folders = _string_list(data.get("attachedFoldersNew")) or _string_list(data.get("attachedFolders"))

    return MessageRecord(
        message_id=data.get("bubbleId") if isinstance(data.get("bubbleId"), str) else message_id,
        role=role,
        text=text if isinstance(text, str) else "",
        relevant_files=_string_list(data.get("relevantFiles")),
        attached_folders=folders,
        suggested_code_blocks=tuple(code_blocks) if isinstance(code_blocks, list) else (),
        created_at=created_at if isinstance(created_at, str) else "",
    )
