"""
Storage Watch Package

Register interest in file-system changes across files and directories and
get a callback when a matching change happens.

Features:
- Fluent builder with chained, independently filtered request segments
- Grouping of requests into one watch per canonical directory
- Event kinds: CREATE, MODIFY, DELETE (overflow markers are skipped)
- Single background thread polling all watches and dispatching callbacks
- Explicit start/stop lifecycle with handle teardown
"""

from .models import (
    EventKind,
    RawEvent,
    TimeUnit,
    WatchUnitConfig,
    DEFAULT_EVENT_KINDS,
    noop_callback,
)

from .config import WatcherConfig, DEFAULT_INTERVAL_MS, DEFAULT_POLL_TIMEOUT_MS

from .exceptions import (
    WatcherError,
    ConfigurationError,
    UnitConstructionError,
    WatcherStoppedError,
)

from .handle import DirectoryWatchHandle, DirectoryEventHandler
from .unit import WatchUnit
from .watcher import StorageWatcher, WatcherState
from .builder import StorageWatcherBuilder, RequestSegment, group_by_directory


__all__ = [
    # Models
    "EventKind",
    "RawEvent",
    "TimeUnit",
    "WatchUnitConfig",
    "DEFAULT_EVENT_KINDS",
    "noop_callback",
    # Config
    "WatcherConfig",
    "DEFAULT_INTERVAL_MS",
    "DEFAULT_POLL_TIMEOUT_MS",
    # Exceptions
    "WatcherError",
    "ConfigurationError",
    "UnitConstructionError",
    "WatcherStoppedError",
    # Components
    "DirectoryWatchHandle",
    "DirectoryEventHandler",
    "WatchUnit",
    "RequestSegment",
    "group_by_directory",
    # Builder and watcher
    "StorageWatcherBuilder",
    "StorageWatcher",
    "WatcherState",
]

__version__ = "0.1.0"
