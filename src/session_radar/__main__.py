"""CLI entry point for session-radar.

Lists recent Cursor and Claude Code sessions:
    python -m session_radar recent
    python -m session_radar watch
"""

import json
import signal
from pathlib import Path
from types import FrameType

import click

from session_radar.config import Config, load_config
from session_radar.daemon import request_shutdown, run_feed
from session_radar.feed import FeedResult, SessionFeed
from session_radar.logging import get_logger, setup_logging
from session_radar.models import STATUS_ACTIVE, STATUS_PENDING, SessionSummary

logger = get_logger("cli")

STATUS_COLORS = {
    STATUS_ACTIVE: "\033[32m",
    STATUS_PENDING: "\033[33m",
}
RESET = "\033[0m"


def signal_handler(signum: int, frame: FrameType | None) -> None:
    """Handle shutdown signals gracefully."""
    sig_name = signal.Signals(signum).name
    logger.info("Received signal %s, shutting down", sig_name)
    request_shutdown()


def print_session(summary: SessionSummary, verbose: bool = False) -> None:
    """Print one session summary."""
    color = STATUS_COLORS.get(summary.status, "")
    click.echo(
        f"\033[36m[{summary.last_activity_time}]\033[0m {color}{summary.status}{RESET} "
        f"\033[1m{summary.title}\033[0m"
    )
    click.echo(
        f"Source: \033[32m{summary.source}\033[0m | Project: {summary.project_name} "
        f"| Messages: {summary.message_count}"
    )

    if summary.todos.total:
        line = f"Todos: {summary.todos.completed}/{summary.todos.total}"
        if summary.todos.first_in_progress:
            line += f" (in progress: {summary.todos.first_in_progress})"
        click.echo(line)

    if verbose:
        click.echo(f"ID: {summary.id}")
        click.echo(f"Model: {summary.model}")
        if summary.has_code_changes:
            click.echo(
                f"Code: {summary.code_block_count} blocks, "
                f"+{summary.lines_added}/-{summary.lines_removed} lines"
            )
        if summary.relevant_files:
            click.echo(f"Files: {', '.join(summary.relevant_files)}")
        if summary.first_message:
            click.echo(f"First: {summary.first_message}")

    if summary.last_message:
        click.echo(f"Last: {summary.last_message}")
    click.echo("-" * 40)


def print_result(result: FeedResult, verbose: bool = False) -> None:
    """Print a feed result with its warnings."""
    for warning in result.warnings:
        click.echo(f"Warning: {warning}", err=True)

    click.echo(f"Found {len(result.data)} sessions:\n")
    for summary in result.data:
        print_session(summary, verbose)


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Path to config.yaml",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None) -> None:
    """Recent AI coding sessions from Cursor and Claude Code."""
    config = load_config(config_path)
    setup_logging("cli", log_dir=config.log_dir, console=False)
    ctx.obj = config


@cli.command()
@click.option("--limit", "-n", type=int, default=None, help="Number of sessions")
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of text")
@click.option("--verbose", "-v", is_flag=True, help="Show more details")
@click.pass_obj
def recent(config: Config, limit: int | None, as_json: bool, verbose: bool) -> None:
    """Show the most recent sessions."""
    # One-shot query, nothing to watch
    config.watcher.enabled = False

    with SessionFeed.initialize(config) as feed:
        result = feed.get_recent_sessions(limit if limit is not None else config.feed.limit)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        print_result(result, verbose)


@cli.command()
@click.option("--limit", "-n", type=int, default=None, help="Number of sessions")
@click.option("--interval", type=int, default=None, help="Seconds between refreshes")
@click.option("--verbose", "-v", is_flag=True, help="Show more details")
@click.pass_obj
def watch(config: Config, limit: int | None, interval: int | None, verbose: bool) -> None:
    """Keep printing recent sessions as they change."""
    # Set up signal handlers for graceful shutdown
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    if limit is not None:
        config.feed.limit = limit
    if interval is not None:
        config.feed.poll_interval_seconds = interval

    def sink(result: FeedResult) -> None:
        click.clear()
        print_result(result, verbose)

    try:
        run_feed(config, sink)
    except KeyboardInterrupt:
        # Handle case where signal handler didn't catch it
        logger.info("Interrupted, shutting down")
        request_shutdown()


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
