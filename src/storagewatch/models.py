"""Data models for the storagewatch package."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, FrozenSet, Optional, Union
import time


class EventKind(Enum):
    """Kinds of directory entry changes."""
    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"
    OVERFLOW = "overflow"


DEFAULT_EVENT_KINDS: FrozenSet[EventKind] = frozenset(
    {EventKind.CREATE, EventKind.MODIFY, EventKind.DELETE}
)

OnChanged = Callable[[Path, str], None]
OnError = Callable[[BaseException], None]


def noop_callback(directory: Path, filename: str) -> None:
    """Callback used by segments that never set one."""
    return None


class TimeUnit(Enum):
    """Units accepted by the builder's interval setting."""
    MILLISECONDS = "ms"
    SECONDS = "s"
    MINUTES = "min"
    HOURS = "h"

    def to_seconds(self, value: Union[int, float]) -> float:
        return value * _SECONDS_PER_UNIT[self]


_SECONDS_PER_UNIT = {
    TimeUnit.MILLISECONDS: 0.001,
    TimeUnit.SECONDS: 1.0,
    TimeUnit.MINUTES: 60.0,
    TimeUnit.HOURS: 3600.0,
}


@dataclass(frozen=True)
class RawEvent:
    """
    One change reported by a directory watch handle.

    Attributes:
        kind: The kind of change
        filename: Name of the entry relative to the watched directory
            (None for OVERFLOW markers)
        timestamp: Unix timestamp when the change was observed
    """
    kind: EventKind
    filename: Optional[str] = None
    timestamp: float = field(default_factory=time.time, compare=False)


@dataclass(frozen=True)
class WatchUnitConfig:
    """
    Immutable watch configuration for one directory.

    Attributes:
        directory: Canonical absolute path of the directory
        files: Entry names to restrict matching to (empty = every entry)
        event_kinds: Kinds of change the callback is interested in
            (empty = CREATE, MODIFY and DELETE)
        on_changed: Called with (directory, filename) for each matching change
    """
    directory: Path
    files: FrozenSet[str] = frozenset()
    event_kinds: FrozenSet[EventKind] = DEFAULT_EVENT_KINDS
    on_changed: OnChanged = noop_callback

    def __post_init__(self):
        if not self.directory.is_absolute():
            raise ValueError(f"directory must be absolute: {self.directory}")
        if EventKind.OVERFLOW in self.event_kinds:
            raise ValueError("OVERFLOW cannot be subscribed to")
        for name in self.files:
            if not name or Path(name).name != name:
                raise ValueError(f"files must be bare entry names: {name!r}")
        object.__setattr__(self, "files", frozenset(self.files))
        object.__setattr__(
            self,
            "event_kinds",
            frozenset(self.event_kinds) if self.event_kinds else DEFAULT_EVENT_KINDS,
        )

    @property
    def watches_all_files(self) -> bool:
        """True when no file restriction is configured."""
        return not self.files

    def accepts(self, event: RawEvent) -> bool:
        """Check whether a raw event should reach this config's callback."""
        if event.kind is EventKind.OVERFLOW:
            return False
        if event.kind not in self.event_kinds:
            return False
        return self.watches_all_files or event.filename in self.files

    def to_dict(self) -> dict:
        """Convert to a dictionary for logging and display."""
        return {
            "directory": str(self.directory),
            "files": sorted(self.files),
            "event_kinds": sorted(kind.value for kind in self.event_kinds),
        }
