"""Exceptions raised by session-radar readers."""


class ReaderError(Exception):
    """Base class for reader failures."""


class StoreConnectionError(ReaderError):
    """The key-value store could not be opened or is not a Cursor store."""

    def __init__(self, db_path: object, reason: str) -> None:
        self.db_path = str(db_path)
        self.reason = reason
        super().__init__(f"Failed to open key-value store {self.db_path}: {reason}")


class RecordParseError(ReaderError):
    """A stored record exists but cannot be decoded or validated."""

    def __init__(self, key: str, reason: str) -> None:
        self.key = key
        self.reason = reason
        super().__init__(f"Failed to parse record {key}: {reason}")


class SourceUnavailableError(ReaderError):
    """A whole session source is not initialized or not reachable."""

    def __init__(self, source: str, reason: str = "source not available") -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"{source}: {reason}")
