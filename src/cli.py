#!/usr/bin/env python3
"""
CLI for watching files and directories.

Usage:
    python -m src.cli watch --dir ./config --event modify
    python -m src.cli watch --file ./settings.yaml --file ./secrets.env --interval 500
    python -m src.cli plan --dir ./config --file ./other/app.ini
"""

import argparse
import logging
import signal
import sys
import time
from pathlib import Path
from typing import List, Optional

from src.storagewatch import (
    ConfigurationError,
    StorageWatcherBuilder,
    TimeUnit,
    UnitConstructionError,
    WatcherConfig,
)


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("cli")


class GracefulShutdown:
    """Handle graceful shutdown on SIGINT/SIGTERM."""

    def __init__(self):
        self.should_exit = False
        signal.signal(signal.SIGINT, self._handler)
        signal.signal(signal.SIGTERM, self._handler)

    def _handler(self, signum, frame):
        logger.info("Received shutdown signal, stopping...")
        self.should_exit = True


def print_change(directory: Path, filename: str) -> None:
    print(directory / filename, flush=True)


def make_builder(args) -> StorageWatcherBuilder:
    """Build a single-segment builder from parsed arguments."""
    builder = StorageWatcherBuilder(config=WatcherConfig.from_env())
    builder.watch_directories(args.dirs or [])
    builder.watch_files(args.files or [])
    builder.specify_events(args.events or [])
    if args.interval is not None:
        builder.interval(args.interval, TimeUnit.MILLISECONDS)
    return builder.on_changed(print_change)


def cmd_watch(args) -> int:
    """Watch until interrupted, printing one line per matching change."""
    builder = make_builder(args)
    builder.on_error(lambda e: logger.error(f"Watcher stopped on error: {e}"))
    watcher = builder.build()

    for unit in watcher.units:
        logger.info(f"  - {unit.config.directory} {unit.config.to_dict()['files'] or '(all files)'}")

    shutdown = GracefulShutdown()
    with watcher:
        watcher.start()
        logger.info("Press Ctrl+C to stop")
        while not shutdown.should_exit and watcher.is_alive():
            time.sleep(0.2)

    if watcher.error is not None:
        return 1
    logger.info("Watcher stopped")
    return 0


def cmd_plan(args) -> int:
    """Print the per-directory watch plan without watching anything."""
    for config in make_builder(args).build_configs():
        info = config.to_dict()
        files = ", ".join(info["files"]) if info["files"] else "*"
        print(f"{info['directory']}: files={files} events={','.join(info['event_kinds'])}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Watch files and directories for changes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Print every change in a directory
  python -m src.cli watch --dir ./config

  # Only report creation of two files, polling every 100 ms
  python -m src.cli watch --file a.txt --file b.txt --event create --interval 100

  # Show which directories would be watched
  python -m src.cli plan --dir ./config --file ./other/app.ini
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, func, help_text in (
        ("watch", cmd_watch, "Watch for changes until interrupted"),
        ("plan", cmd_plan, "Show the grouped watch plan"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--dir", dest="dirs", action="append", help="Directory to watch in full")
        sub.add_argument("--file", dest="files", action="append", help="File to watch")
        sub.add_argument(
            "--event",
            dest="events",
            action="append",
            choices=["create", "modify", "delete"],
            help="Event kind to report (default: all)",
        )
        sub.add_argument("--interval", type=int, help="Poll interval in ms (default: 250)")
        sub.set_defaults(func=func)

    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if not args.dirs and not args.files:
        parser.error("at least one --dir or --file is required")

    try:
        return args.func(args)
    except (ConfigurationError, UnitConstructionError) as e:
        logger.error(str(e))
        return 2


if __name__ == "__main__":
    sys.exit(main())
