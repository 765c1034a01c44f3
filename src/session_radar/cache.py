"""In-memory lookup cache shared by readers.

Each reader instance owns its own cache. Entries are inserted on first
access and served verbatim until the whole cache is cleared; there is no
per-entry invalidation because a raw file-change event cannot say which
records changed.
"""

import threading
from collections.abc import Callable, Hashable
from typing import Any


class LookupCache:
    """Exact-match cache with get-or-load and clear-all semantics."""

    def __init__(self, enabled: bool = True) -> None:
        self._enabled = enabled
        self._entries: dict[Hashable, Any] = {}
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def generation(self) -> int:
        """Counter bumped by every clear()."""
        with self._lock:
            return self._generation

    def get(self, key: Hashable) -> Any | None:
        """Return the cached value for key, or None."""
        with self._lock:
            return self._entries.get(key)

    def put_if_absent(self, key: Hashable, value: Any, generation: int | None = None) -> Any:
        """Store value unless key is already present; return the stored value.

        When `generation` is given and the cache has been cleared since it
        was read, the value is returned without being stored.
        """
        if not self._enabled or value is None:
            return value
        with self._lock:
            if generation is not None and generation != self._generation:
                return value
            return self._entries.setdefault(key, value)

    def get_or_load(self, key: Hashable, loader: Callable[[], Any]) -> Any:
        """Return the cached value, loading and caching it on a miss.

        None results are returned but not cached, so absent records are
        looked up again on the next access. The loader runs outside the
        lock; concurrent misses may both load, and the first stored value wins.
        A value loaded across a clear() is returned but not stored.
        """
        generation = self.generation
        cached = self.get(key)
        if cached is not None:
            return cached
        return self.put_if_absent(key, loader(), generation)

    def clear(self) -> None:
        """Drop every entry."""
        with self._lock:
            self._entries.clear()
            self._generation += 1

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
