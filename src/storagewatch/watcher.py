"""Storage watcher: the poll and dispatch loop over built watch units."""

import logging
import threading
from enum import Enum
from typing import Optional, Sequence, Tuple

from .config import WatcherConfig
from .exceptions import WatcherStoppedError
from .models import EventKind, OnError
from .unit import WatchUnit

logger = logging.getLogger(__name__)


class WatcherState(Enum):
    """Lifecycle states of a StorageWatcher."""
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class StorageWatcher:
    """
    Drives a fixed list of watch units from one background thread.

    Each pass polls every active unit in build order with a short timeout,
    invokes callbacks for the events that pass the unit's filter, re-arms the
    unit, and then sleeps for the configured interval. Callbacks run on the
    watcher thread, one at a time.

    Stopping is cooperative: stop() only raises a flag that the poll and the
    sleep both observe. When the loop exits, for whatever reason, it closes
    every unit's watch handle. A stopped watcher cannot be started again.
    """

    def __init__(
        self,
        units: Sequence[WatchUnit],
        interval_s: Optional[float] = None,
        config: Optional[WatcherConfig] = None,
        on_error: Optional[OnError] = None,
    ):
        """
        Initialize the watcher.

        Args:
            units: Watch units in dispatch order
            interval_s: Seconds to sleep between passes (default from config)
            config: Watcher configuration
            on_error: Called with the exception that ends the loop, if any
        """
        self.config = config or WatcherConfig()
        self._units: Tuple[WatchUnit, ...] = tuple(units)
        self.interval = interval_s if interval_s and interval_s > 0 else self.config.interval_s
        self.poll_timeout = self.config.poll_timeout_for(self.interval)
        self.on_error = on_error

        self._state = WatcherState.IDLE
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._error: Optional[BaseException] = None
        self._released = False

    @property
    def units(self) -> Tuple[WatchUnit, ...]:
        """The watch units, in dispatch order."""
        return self._units

    @property
    def state(self) -> WatcherState:
        return self._state

    @property
    def is_running(self) -> bool:
        """Check if the watcher has been started and not stopped."""
        return self._state is WatcherState.RUNNING

    @property
    def error(self) -> Optional[BaseException]:
        """The exception that terminated the loop, or None."""
        return self._error

    def start(self) -> None:
        """
        Start the loop on a background thread.

        Does nothing if the watcher is already running.

        Raises:
            WatcherStoppedError: If the watcher was stopped before
        """
        with self._lock:
            if self._state is WatcherState.RUNNING:
                logger.debug("Storage watcher already running")
                return
            if self._state is WatcherState.STOPPED:
                raise WatcherStoppedError("Storage watcher was stopped; build a new one")

            self._state = WatcherState.RUNNING
            self._thread = threading.Thread(
                target=self._run,
                name="StorageWatcher",
                daemon=True,
            )
            self._thread.start()

        logger.info(
            f"Storage watcher started: {len(self._units)} unit(s), "
            f"interval={self.interval}s, poll_timeout={self.poll_timeout}s"
        )

    def stop(self) -> None:
        """
        Ask the loop to stop.

        Returns without waiting; a callback in progress is not interrupted.
        Use join() or is_alive() to confirm the thread has exited. Stopping
        a watcher that never started releases its watch handles right away.
        """
        self._stop_event.set()
        with self._lock:
            previous = self._state
            self._state = WatcherState.STOPPED

        if previous is WatcherState.IDLE:
            self._release_units()
        if previous is not WatcherState.STOPPED:
            logger.info("Storage watcher stop requested")

    def is_alive(self) -> bool:
        """Check if the loop thread is still running."""
        return self._thread is not None and self._thread.is_alive()

    def join(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the loop thread to exit.

        Returns:
            True if the thread is no longer alive
        """
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        return not self.is_alive()

    def close(self, timeout: Optional[float] = None) -> bool:
        """
        Stop the watcher, wait for the loop and release all watch handles.

        Returns:
            True if the loop thread has exited
        """
        self.stop()
        stopped = self.join(self.config.join_timeout_s if timeout is None else timeout)
        if not stopped:
            logger.warning("Storage watcher thread did not exit in time")
        return stopped

    def _run(self) -> None:
        """Thread body: poll passes until stopped or failed."""
        logger.debug("Storage watcher loop started")
        try:
            if not self._units:
                logger.info("Storage watcher has no units to poll")
                return

            while not self._stop_event.is_set():
                self._poll_pass()
                self._stop_event.wait(self.interval)
        except Exception as e:
            self._error = e
            logger.exception(f"Storage watcher loop failed: {e}")
            self._report_error(e)
        finally:
            with self._lock:
                self._state = WatcherState.STOPPED
            self._release_units()
            logger.info("Storage watcher loop exited")

    def _poll_pass(self) -> int:
        """
        Poll every active unit once and dispatch matching events.

        Returns:
            Number of callbacks invoked
        """
        dispatched = 0
        for unit in self._units:
            if self._stop_event.is_set():
                break
            if not unit.active:
                continue

            events = unit.poll(self.poll_timeout)
            if not events:
                continue

            for event in events:
                if event.kind is EventKind.OVERFLOW:
                    logger.warning(f"Events may have been lost for {unit.config.directory}")
                    continue
                if self._stop_event.is_set():
                    return dispatched
                if unit.accepts(event):
                    logger.debug(
                        f"Dispatching {event.kind.value} {event.filename} "
                        f"in {unit.config.directory}"
                    )
                    unit.dispatch(event)
                    dispatched += 1

            if not unit.reset():
                logger.warning(
                    f"Watch on {unit.config.directory} is no longer valid, "
                    f"skipping it from now on"
                )
        return dispatched

    def _report_error(self, error: BaseException) -> None:
        if self.on_error is None:
            return
        try:
            self.on_error(error)
        except Exception:
            logger.exception("on_error callback failed")

    def _release_units(self) -> None:
        with self._lock:
            if self._released:
                return
            self._released = True

        for unit in self._units:
            unit.close()
        logger.debug(f"Released {len(self._units)} watch unit(s)")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
