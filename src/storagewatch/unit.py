"""A watch unit: one directory watch handle paired with its configuration."""

import logging
from typing import Callable, List, Optional

from .config import WatcherConfig
from .exceptions import UnitConstructionError
from .handle import DirectoryWatchHandle
from .models import RawEvent, WatchUnitConfig

logger = logging.getLogger(__name__)


HandleFactory = Callable[[WatchUnitConfig, WatcherConfig], DirectoryWatchHandle]


def open_directory_handle(config: WatchUnitConfig, settings: WatcherConfig) -> DirectoryWatchHandle:
    """Default handle factory: a watchdog-backed handle for the config's directory."""
    return DirectoryWatchHandle(
        config.directory,
        queue_size=settings.queue_size,
        join_timeout=settings.join_timeout_s,
    )


class WatchUnit:
    """
    Owns the watch handle for one WatchUnitConfig.

    The handle is opened and registered for the config's event kinds on
    construction and stays private to the unit. A unit that reports an
    invalid handle after a batch is marked inactive and produces no further
    events.
    """

    def __init__(
        self,
        config: WatchUnitConfig,
        settings: Optional[WatcherConfig] = None,
        handle_factory: Optional[HandleFactory] = None,
    ):
        """
        Open and register the watch handle.

        Args:
            config: The directory configuration to serve
            settings: Watcher settings (queue size, join timeout)
            handle_factory: Creates the unregistered handle

        Raises:
            UnitConstructionError: If the handle cannot be opened or registered
        """
        self.config = config
        settings = settings or WatcherConfig()
        factory = handle_factory or open_directory_handle
        self._active = True

        try:
            handle = factory(config, settings)
        except OSError as e:
            raise UnitConstructionError(config.directory, str(e), e) from e

        try:
            handle.register(config.event_kinds)
        except (OSError, RuntimeError) as e:
            handle.close()
            raise UnitConstructionError(config.directory, str(e), e) from e
        self._handle = handle

    @property
    def active(self) -> bool:
        """False once the handle went invalid or the unit was closed."""
        return self._active

    def poll(self, timeout: float) -> List[RawEvent]:
        """Get the next batch of raw events, waiting at most timeout seconds."""
        if not self._active:
            return []
        return self._handle.poll(timeout)

    def accepts(self, event: RawEvent) -> bool:
        """Check whether the event passes this unit's kind and file filter."""
        return self.config.accepts(event)

    def dispatch(self, event: RawEvent) -> None:
        """Invoke the configured callback for an accepted event."""
        self.config.on_changed(self.config.directory, event.filename)

    def reset(self) -> bool:
        """
        Re-arm the handle after draining a batch.

        Returns:
            True if the unit keeps watching, False if it is now inactive
        """
        if not self._active:
            return False
        if not self._handle.reset():
            self._active = False
        return self._active

    def close(self) -> None:
        """Release the watch handle."""
        self._active = False
        self._handle.close()

    def __repr__(self) -> str:
        state = "active" if self._active else "inactive"
        return f"WatchUnit({self.config.directory}, {state})"
