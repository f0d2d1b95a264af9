#!/usr/bin/env python3
"""
Config reload demo.

This example demonstrates:
1. Watching a single config file for modification
2. Watching a whole drop directory for new files, with its own callback
3. Stopping the watcher and confirming the loop thread exited

Usage:
    python -m examples.config_reload_demo

The demo will:
- Create a temporary directory structure
- Build a two-segment watcher
- Edit the config file and drop a few files
- Show the callbacks as they fire
- Stop and clean up
"""

import logging
import tempfile
import time
from pathlib import Path

from src.storagewatch import EventKind, StorageWatcherBuilder, TimeUnit


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


def main():
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        config_file = root / "settings.ini"
        config_file.write_text("level = 1\n")
        drop_dir = root / "drop"
        drop_dir.mkdir()

        def on_config_changed(directory: Path, filename: str):
            print(f"[CONFIG] reloading {directory / filename}: {config_file.read_text().strip()}")

        def on_drop(directory: Path, filename: str):
            print(f"[DROP] new file {filename}")

        watcher = (
            StorageWatcherBuilder()
            .interval(50, TimeUnit.MILLISECONDS)
            .specify_event(EventKind.MODIFY)
            .watch_file(config_file)
            .on_changed(on_config_changed)
            .create_next()
            .specify_event(EventKind.CREATE)
            .watch_directory(drop_dir)
            .on_changed(on_drop)
            .build()
        )

        with watcher:
            watcher.start()
            time.sleep(0.2)

            for level in range(2, 4):
                config_file.write_text(f"level = {level}\n")
                time.sleep(0.5)

            for i in range(3):
                (drop_dir / f"job-{i}.json").write_text("{}")
                time.sleep(0.2)

            time.sleep(0.5)

        print(f"[MAIN] watcher thread alive after close: {watcher.is_alive()}")


if __name__ == "__main__":
    main()
