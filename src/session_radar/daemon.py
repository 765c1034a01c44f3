"""Feed daemon main loop: re-query sessions on an interval or on change."""

import threading
from collections.abc import Callable

from session_radar.config import Config
from session_radar.feed import FeedResult, SessionFeed
from session_radar.logging import get_logger, setup_logging

logger = get_logger("daemon")

FeedSink = Callable[[FeedResult], None]

# Global flag for graceful shutdown
_shutdown_requested = False


def request_shutdown() -> None:
    """Request graceful shutdown of the feed daemon."""
    global _shutdown_requested
    _shutdown_requested = True


def is_shutdown_requested() -> bool:
    """Check if shutdown has been requested."""
    return _shutdown_requested


def reset_shutdown() -> None:
    """Reset shutdown flag (useful for testing)."""
    global _shutdown_requested
    _shutdown_requested = False


def run_feed_cycle(feed: SessionFeed, limit: int, sink: FeedSink) -> FeedResult:
    """Run one query pass and hand the result to the sink.

    Args:
        feed: Initialized session feed
        limit: Maximum number of summaries
        sink: Consumer of the feed result

    Returns:
        The FeedResult passed to the sink
    """
    result = feed.get_recent_sessions(limit)

    for warning in result.warnings:
        logger.warning("Feed warning: %s", warning)

    try:
        sink(result)
    except Exception:
        logger.exception("Feed sink failed")

    return result


def wait_for_refresh(refresh: threading.Event, interval: float) -> bool:
    """Wait up to `interval` seconds for a refresh signal or shutdown.

    Returns:
        True if a data-changed signal arrived before the interval elapsed
    """
    remaining = interval
    while remaining > 0 and not is_shutdown_requested():
        step = min(1.0, remaining)
        if refresh.wait(step):
            refresh.clear()
            return True
        remaining -= step
    return False


def run_feed(config: Config, sink: FeedSink, feed: SessionFeed | None = None) -> None:
    """Run the feed daemon main loop.

    Queries the feed, passes the result to the sink, and repeats every
    poll interval, or sooner when the store reports a change, until
    shutdown is requested.

    Args:
        config: Application configuration
        sink: Consumer of every feed result
        feed: Pre-built feed (built from config when omitted)
    """
    reset_shutdown()

    setup_logging("daemon", log_dir=config.log_dir)

    limit = config.feed.limit
    interval = config.feed.poll_interval_seconds

    logger.info(
        "Starting feed daemon: limit=%d interval=%ds cursor=%s claude_code=%s",
        limit,
        interval,
        config.cursor.enabled,
        config.claude_code.enabled,
    )

    owns_feed = feed is None
    if feed is None:
        feed = SessionFeed.initialize(config)

    refresh = threading.Event()
    unregister = feed.on_data_changed(refresh.set)

    try:
        while not is_shutdown_requested():
            result = run_feed_cycle(feed, limit, sink)
            logger.debug("Cycle complete: sessions=%d warnings=%d", len(result.data), len(result.warnings))

            if is_shutdown_requested():
                break

            if wait_for_refresh(refresh, interval):
                logger.debug("Refreshing after data change")
    finally:
        unregister()
        if owns_feed:
            feed.close()

    logger.info("Feed daemon stopped")
