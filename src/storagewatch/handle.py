"""Directory watch handle built on the watchdog library."""

import logging
import os
import queue
import threading
from pathlib import Path
from typing import Iterable, List, Optional, Set

from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver
from watchdog.events import (
    FileSystemEvent,
    FileSystemEventHandler,
    FileSystemMovedEvent,
)

from .models import EventKind, RawEvent

logger = logging.getLogger(__name__)


class DirectoryEventHandler(FileSystemEventHandler):
    """Handler that relays watchdog events for one directory to its handle."""

    def __init__(self, handle: "DirectoryWatchHandle"):
        super().__init__()
        self.handle = handle

    def on_created(self, event: FileSystemEvent):
        self.handle.relay(EventKind.CREATE, event.src_path)

    def on_deleted(self, event: FileSystemEvent):
        self.handle.relay(EventKind.DELETE, event.src_path)

    def on_modified(self, event: FileSystemEvent):
        self.handle.relay(EventKind.MODIFY, event.src_path)

    def on_moved(self, event: FileSystemMovedEvent):
        # A rename is seen as the old name going away and the new one appearing
        self.handle.relay(EventKind.DELETE, event.src_path)
        self.handle.relay(EventKind.CREATE, event.dest_path)


class DirectoryWatchHandle:
    """
    A watch on the entries of a single directory.

    Wraps one watchdog observer scheduled non-recursively on the directory.
    Changes are buffered in a bounded queue and handed out in batches by
    poll(); when the queue fills up, further changes are dropped and the next
    batch carries an OVERFLOW marker instead.

    Usage:
        handle = DirectoryWatchHandle(Path("/srv/config"))
        handle.register({EventKind.MODIFY})
        events = handle.poll(0.05)
        valid = handle.reset()
        handle.close()
    """

    def __init__(
        self,
        directory: Path,
        queue_size: int = 1024,
        join_timeout: float = 5.0,
    ):
        """
        Initialize the handle.

        Args:
            directory: Canonical absolute path of the directory to watch
            queue_size: Maximum number of buffered events
            join_timeout: Seconds to wait for the observer thread on close
        """
        self.directory = directory
        self.queue_size = queue_size
        self.join_timeout = join_timeout
        self._queue: "queue.Queue[RawEvent]" = queue.Queue(maxsize=queue_size)
        self._kinds: Set[EventKind] = set()
        self._observer: Optional[BaseObserver] = None
        self._lock = threading.Lock()
        self._overflowed = False
        self._invalid = False
        self._closed = False

    def register(self, kinds: Iterable[EventKind]) -> None:
        """
        Register interest in the given kinds of change and start watching.

        Raises:
            FileNotFoundError: If the directory does not exist
            NotADirectoryError: If the path is not a directory
            PermissionError: If the directory cannot be read
            OSError: If the platform refuses the watch
            RuntimeError: If the handle is closed or already registered
        """
        if self._closed:
            raise RuntimeError(f"Watch handle for {self.directory} is closed")
        if self._observer is not None:
            raise RuntimeError(f"Watch handle for {self.directory} is already registered")

        if not self.directory.exists():
            raise FileNotFoundError(f"Directory does not exist: {self.directory}")
        if not self.directory.is_dir():
            raise NotADirectoryError(f"Not a directory: {self.directory}")
        if not os.access(self.directory, os.R_OK | os.X_OK):
            raise PermissionError(f"Directory is not readable: {self.directory}")

        self._kinds = {kind for kind in kinds if kind is not EventKind.OVERFLOW}

        observer = Observer()
        observer.schedule(
            DirectoryEventHandler(self),
            str(self.directory),
            recursive=False,
        )
        try:
            observer.start()
        except Exception:
            observer.stop()
            raise
        self._observer = observer
        logger.debug(
            f"Watching {self.directory} for {sorted(kind.value for kind in self._kinds)}"
        )

    def relay(self, kind: EventKind, raw_path) -> None:
        """Queue a change reported by watchdog for an absolute path."""
        if self._closed:
            return

        path = Path(os.fsdecode(raw_path))
        if path == self.directory:
            if kind is EventKind.DELETE:
                self._invalidate("directory was removed")
            return
        if path.parent != self.directory:
            return
        if kind not in self._kinds:
            return

        try:
            self._queue.put_nowait(RawEvent(kind, path.name))
        except queue.Full:
            with self._lock:
                if not self._overflowed:
                    logger.warning(f"Event queue full for {self.directory}, dropping events")
                self._overflowed = True

    def poll(self, timeout: float) -> List[RawEvent]:
        """
        Wait up to timeout seconds for changes.

        Returns:
            The pending batch of events, empty if nothing happened
        """
        if self._closed:
            return []

        batch: List[RawEvent] = []
        with self._lock:
            if self._overflowed:
                self._overflowed = False
                batch.append(RawEvent(EventKind.OVERFLOW))

        try:
            if not batch:
                batch.append(self._queue.get(timeout=timeout))
            for _ in range(self.queue_size):
                batch.append(self._queue.get_nowait())
        except queue.Empty:
            pass
        return batch

    def reset(self) -> bool:
        """
        Re-arm the handle after a batch has been consumed.

        Returns:
            True if the handle can keep producing events
        """
        if self._closed or self._invalid or self._observer is None:
            return False
        if not self._observer.is_alive():
            self._invalidate("observer thread exited")
        elif not self.directory.is_dir():
            self._invalidate("directory is gone")
        return not self._invalid

    @property
    def is_valid(self) -> bool:
        """Check if the handle is registered, open and not invalidated."""
        return self._observer is not None and not self._closed and not self._invalid

    def _invalidate(self, reason: str) -> None:
        if not self._invalid:
            logger.debug(f"Watch handle for {self.directory} invalidated: {reason}")
        self._invalid = True

    def close(self) -> None:
        """Stop the observer and release the watch. Safe to call twice."""
        if self._closed:
            return
        self._closed = True

        observer, self._observer = self._observer, None
        if observer is None:
            return
        observer.stop()
        if observer is not threading.current_thread():
            observer.join(timeout=self.join_timeout)
        logger.debug(f"Closed watch handle for {self.directory}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
