"""Configuration for the storagewatch package."""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .exceptions import ConfigurationError


DEFAULT_INTERVAL_MS = 250
DEFAULT_POLL_TIMEOUT_MS = 50


@dataclass
class WatcherConfig:
    """
    Configuration options for the storage watcher.

    Attributes:
        interval_ms: Sleep between two passes over all watch units, used when
            the builder never sets an interval
        poll_timeout_ms: Upper bound on how long a single unit poll blocks
        queue_size: Raw events buffered per handle before an overflow is reported
        join_timeout_s: Time allowed for a watch handle's observer thread to exit
    """
    interval_ms: int = DEFAULT_INTERVAL_MS
    poll_timeout_ms: int = DEFAULT_POLL_TIMEOUT_MS
    queue_size: int = 1024
    join_timeout_s: float = 5.0

    def __post_init__(self):
        if self.interval_ms <= 0:
            raise ConfigurationError(f"interval_ms must be positive: {self.interval_ms}")
        if self.poll_timeout_ms <= 0:
            raise ConfigurationError(f"poll_timeout_ms must be positive: {self.poll_timeout_ms}")
        if self.queue_size <= 0:
            raise ConfigurationError(f"queue_size must be positive: {self.queue_size}")

    @property
    def interval_s(self) -> float:
        return self.interval_ms / 1000.0

    def poll_timeout_for(self, interval_s: float) -> float:
        """
        Get the poll timeout in seconds for a given pass interval.

        The timeout never exceeds the interval, so a stop request is seen
        within one interval even when the interval is very short.
        """
        return min(self.poll_timeout_ms / 1000.0, interval_s)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "WatcherConfig":
        """
        Create a config with overrides from environment variables.

        Reads STORAGEWATCH_INTERVAL_MS, STORAGEWATCH_POLL_TIMEOUT_MS and
        STORAGEWATCH_QUEUE_SIZE. Unset variables keep their defaults.

        Raises:
            ConfigurationError: If a variable is not a positive integer
        """
        environ = os.environ if environ is None else environ
        overrides = {}
        for field_name, env_name in (
            ("interval_ms", "STORAGEWATCH_INTERVAL_MS"),
            ("poll_timeout_ms", "STORAGEWATCH_POLL_TIMEOUT_MS"),
            ("queue_size", "STORAGEWATCH_QUEUE_SIZE"),
        ):
            raw = environ.get(env_name)
            if raw is None or raw.strip() == "":
                continue
            try:
                overrides[field_name] = int(raw)
            except ValueError:
                raise ConfigurationError(f"{env_name} must be an integer, got {raw!r}") from None
        return cls(**overrides)
