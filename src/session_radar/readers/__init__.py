"""Readers for AI coding-assistant session stores."""

from .base import SessionSource, SessionSummary, SummaryOptions
from .conversations import ConversationSummarizer, CursorSource, infer_project_name
from .jsonl import JsonlSessionReader
from .kv_store import ConversationFilters, KeyValueStore
from .messages import MessageResolver

__all__ = [
    "ConversationFilters",
    "ConversationSummarizer",
    "CursorSource",
    "JsonlSessionReader",
    "KeyValueStore",
    "MessageResolver",
    "SessionSource",
    "SessionSummary",
    "SummaryOptions",
    "infer_project_name",
]
