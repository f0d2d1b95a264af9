"""Custom exceptions for the storagewatch package."""

from pathlib import Path
from typing import Optional


class WatcherError(Exception):
    """Base exception for all watcher errors."""
    pass


class ConfigurationError(WatcherError, ValueError):
    """A builder call or configuration value was rejected."""
    pass


class UnitConstructionError(WatcherError):
    """A watch handle could not be opened or registered for a directory."""

    def __init__(self, directory: Path, reason: str, cause: Optional[BaseException] = None):
        super().__init__(f"Cannot watch directory {directory}: {reason}")
        self.directory = directory
        self.reason = reason
        self.cause = cause


class WatcherStoppedError(WatcherError):
    """The watcher has been stopped and cannot be started again."""
    pass
