"""Configuration loading and management."""

import os
import platform
from dataclasses import dataclass, field
from pathlib import Path

import yaml


def default_cursor_db_path() -> Path:
    """Return the platform's default location of Cursor's key-value store.

    Locations:
    - macOS: ~/Library/Application Support/Cursor/User/globalStorage/state.vscdb
    - Windows: %APPDATA%/Cursor/User/globalStorage/state.vscdb
    - Linux and others: ~/.config/Cursor/User/globalStorage/state.vscdb
    """
    system = platform.system()
    tail = Path("Cursor") / "User" / "globalStorage" / "state.vscdb"

    if system == "Darwin":
        return Path.home() / "Library" / "Application Support" / tail
    if system == "Windows":
        appdata = os.environ.get("APPDATA")
        base = Path(appdata) if appdata else Path.home() / "AppData" / "Roaming"
        return base / tail
    return Path.home() / ".config" / tail


@dataclass
class CursorSourceConfig:
    enabled: bool = True
    db_path: Path = field(default_factory=default_cursor_db_path)
    min_conversation_size: int = 100
    max_conversations: int = 50
    resolve_messages: bool = True


@dataclass
class ClaudeCodeSourceConfig:
    enabled: bool = True
    projects_path: Path = field(default_factory=lambda: Path.home() / ".claude" / "projects")
    max_sessions: int = 50


@dataclass
class FeedConfig:
    limit: int = 20
    poll_interval_seconds: int = 30
    first_message_length: int = 100
    last_message_length: int = 100


@dataclass
class WatcherConfig:
    enabled: bool = True
    retry_seconds: float = 5.0


@dataclass
class Config:
    cursor: CursorSourceConfig = field(default_factory=CursorSourceConfig)
    claude_code: ClaudeCodeSourceConfig = field(default_factory=ClaudeCodeSourceConfig)
    feed: FeedConfig = field(default_factory=FeedConfig)
    watcher: WatcherConfig = field(default_factory=WatcherConfig)
    log_dir: Path = field(default_factory=lambda: Path.home() / "session-radar" / "logs")


def expand_path(path_str: str) -> Path:
    """Expand ~ and environment variables in path."""
    return Path(os.path.expandvars(os.path.expanduser(path_str)))


def load_config(config_path: Path | None = None) -> Config:
    """Load configuration from YAML file."""
    if config_path is None:
        # Look for config in standard locations
        search_paths = [
            Path.cwd() / "config.yaml",
            Path.home() / ".config" / "session-radar" / "config.yaml",
            Path("/etc/session-radar/config.yaml"),
        ]
        for path in search_paths:
            if path.exists():
                config_path = path
                break

    if config_path is None or not config_path.exists():
        return Config()

    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    sources_data = data.get("sources", {})

    # Parse cursor source config
    cursor_data = sources_data.get("cursor", {})
    db_path = cursor_data.get("db_path")
    cursor = CursorSourceConfig(
        enabled=cursor_data.get("enabled", True),
        db_path=expand_path(db_path) if db_path else default_cursor_db_path(),
        min_conversation_size=cursor_data.get("min_conversation_size", 100),
        max_conversations=cursor_data.get("max_conversations", 50),
        resolve_messages=cursor_data.get("resolve_messages", True),
    )

    # Parse claude code source config
    claude_data = sources_data.get("claude_code", {})
    claude_code = ClaudeCodeSourceConfig(
        enabled=claude_data.get("enabled", True),
        projects_path=expand_path(claude_data.get("projects_path", "~/.claude/projects")),
        max_sessions=claude_data.get("max_sessions", 50),
    )

    # Parse feed config
    feed_data = data.get("feed", {})
    feed = FeedConfig(
        limit=feed_data.get("limit", 20),
        poll_interval_seconds=feed_data.get("poll_interval_seconds", 30),
        first_message_length=feed_data.get("first_message_length", 100),
        last_message_length=feed_data.get("last_message_length", 100),
    )

    # Parse watcher config
    watcher_data = data.get("watcher", {})
    watcher = WatcherConfig(
        enabled=watcher_data.get("enabled", True),
        retry_seconds=float(watcher_data.get("retry_seconds", 5.0)),
    )

    return Config(
        cursor=cursor,
        claude_code=claude_code,
        feed=feed,
        watcher=watcher,
        log_dir=expand_path(data.get("log_dir", "~/session-radar/logs")),
    )
