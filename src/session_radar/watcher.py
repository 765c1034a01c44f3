"""Change watcher for the key-value store file using watchfiles.

Notifications are best-effort: they may be duplicated or coalesced, and
consumers re-derive everything from a full cache clear and re-query rather
than from the event payload.
"""

import threading
from collections.abc import Callable
from pathlib import Path

from watchfiles import Change, watch

from session_radar.logging import get_logger

logger = get_logger("watcher")

# SQLite writes land in these siblings as well as in the main file
STORE_FILE_SUFFIXES = ("", "-wal", "-journal", "-shm")


class ChangeWatcher:
    """Background watcher that calls `on_change` when a file changes.

    If the file does not exist yet, its existence is re-checked every
    `retry_seconds` until it appears, then the watcher attaches.
    """

    def __init__(
        self,
        path: Path,
        on_change: Callable[[], None],
        retry_seconds: float = 5.0,
        debounce_ms: int = 1600,
    ) -> None:
        self._path = Path(path)
        self._on_change = on_change
        self._retry_seconds = retry_seconds
        self._debounce_ms = debounce_ms
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._attached = threading.Event()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def is_attached(self) -> bool:
        """Whether the watched file exists and OS-level watching has begun."""
        return self._attached.is_set()

    def start(self) -> None:
        """Start watching in a daemon thread."""
        if self.is_running:
            logger.warning("Change watcher already running: path=%s", self._path)
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="session-radar-watcher",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        """Stop watching. Safe to call more than once."""
        self._stop_event.set()
        thread = self._thread
        if thread is not None:
            thread.join(timeout)
            self._thread = None
        self._attached.clear()

    def wait_until_attached(self, timeout: float | None = None) -> bool:
        """Block until the watcher is attached to the file."""
        return self._attached.wait(timeout)

    def _is_store_file(self, change: Change, path: str) -> bool:
        name = Path(path).name
        return any(name == f"{self._path.name}{suffix}" for suffix in STORE_FILE_SUFFIXES)

    def _wait_for_file(self) -> bool:
        """Poll for the file to exist; False if stopped first."""
        while not self._path.exists():
            logger.debug("Waiting for store file: path=%s retry=%.1fs", self._path, self._retry_seconds)
            if self._stop_event.wait(self._retry_seconds):
                return False
        return True

    def _notify(self) -> None:
        try:
            self._on_change()
        except Exception:
            logger.exception("Change callback failed: path=%s", self._path)

    def _run(self) -> None:
        if not self._wait_for_file():
            return

        logger.info("Watching store file: path=%s", self._path)
        self._attached.set()
        try:
            for changes in watch(
                self._path.parent,
                watch_filter=self._is_store_file,
                stop_event=self._stop_event,
                debounce=self._debounce_ms,
                recursive=False,
                raise_interrupt=False,
            ):
                if self._stop_event.is_set():
                    break
                logger.info("Store file changed: path=%s events=%d", self._path, len(changes))
                self._notify()
        except Exception:
            logger.exception("Change watcher failed: path=%s", self._path)
        finally:
            self._attached.clear()
