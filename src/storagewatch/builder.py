"""Fluent builder that turns watch requests into watch units."""

import logging
import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple, Union

from .config import WatcherConfig
from .exceptions import ConfigurationError, UnitConstructionError
from .models import (
    EventKind,
    OnChanged,
    OnError,
    TimeUnit,
    WatchUnitConfig,
    noop_callback,
)
from .unit import HandleFactory, WatchUnit
from .watcher import StorageWatcher

logger = logging.getLogger(__name__)

PathArg = Union[str, "os.PathLike[str]"]


@dataclass
class RequestSegment:
    """
    One independently configured link in a builder chain.

    Attributes:
        directories: Canonical directories to watch in full
        files: Canonical file paths to restrict matching to
        event_kinds: Kinds of change of interest (empty = the default set)
        on_changed: Callback for matching changes
    """
    directories: List[Path] = field(default_factory=list)
    files: List[Path] = field(default_factory=list)
    event_kinds: Set[EventKind] = field(default_factory=set)
    on_changed: OnChanged = noop_callback


@dataclass
class _DirectoryGroup:
    """Grouping record for one canonical directory within a segment."""
    watch_all: bool = False
    files: Set[str] = field(default_factory=set)


def group_by_directory(segment: RequestSegment) -> List[WatchUnitConfig]:
    """
    Group a segment's requests by canonical directory.

    A directory requested explicitly watches every entry, even when files
    in the same directory were requested too. Otherwise the group is
    restricted to the names of the requested files. Groups keep the order
    in which their directory was first mentioned.

    Args:
        segment: The segment to group

    Returns:
        One WatchUnitConfig per distinct directory
    """
    groups: Dict[Path, _DirectoryGroup] = {}
    for directory in segment.directories:
        groups.setdefault(directory, _DirectoryGroup()).watch_all = True
    for file_path in segment.files:
        groups.setdefault(file_path.parent, _DirectoryGroup()).files.add(file_path.name)

    return [
        WatchUnitConfig(
            directory=directory,
            files=frozenset() if group.watch_all else frozenset(group.files),
            event_kinds=frozenset(segment.event_kinds),
            on_changed=segment.on_changed,
        )
        for directory, group in groups.items()
    ]


class _RequestChain:
    """State shared by every builder of one chain."""

    def __init__(
        self,
        settings: WatcherConfig,
        base_dir: Optional[Path],
        handle_factory: Optional[HandleFactory],
    ):
        self.settings = settings
        self.base_dir = base_dir
        self.handle_factory = handle_factory
        self.interval_s: Optional[float] = None
        self.on_error: Optional[OnError] = None


def _flatten(values: Tuple) -> list:
    """Accept either varargs or a single iterable of values."""
    if len(values) == 1 and not isinstance(values[0], (str, bytes, os.PathLike, EventKind)):
        if isinstance(values[0], Iterable):
            return list(values[0])
    return list(values)


class StorageWatcherBuilder:
    """
    Builder for StorageWatcher.

    Each builder holds one request segment: directories, files, event kinds
    and a callback. create_next() starts a new, independent segment linked
    to the current one; build() on the last builder of a chain produces a
    watcher covering every segment of that chain.

    Example:
        watcher = (
            StorageWatcherBuilder()
            .interval(10, TimeUnit.MILLISECONDS)
            .specify_event(EventKind.CREATE)
            .watch_file("settings.yaml")
            .on_changed(lambda directory, filename: reload())
            .build()
        )
        watcher.start()
    """

    def __init__(
        self,
        config: Optional[WatcherConfig] = None,
        base_dir: Optional[PathArg] = None,
        handle_factory: Optional[HandleFactory] = None,
    ):
        """
        Create a builder with one empty segment.

        Args:
            config: Watcher settings (defaults, queue size, timeouts)
            base_dir: Directory that relative paths resolve against
                (default: the working directory at the time of each call)
            handle_factory: Creates watch handles; override for testing
        """
        self._chain = _RequestChain(
            config or WatcherConfig(),
            Path(base_dir).resolve() if base_dir is not None else None,
            handle_factory,
        )
        self._segment = RequestSegment()
        self._lineage: Tuple[RequestSegment, ...] = (self._segment,)

    @classmethod
    def get_builder(cls, config: Optional[WatcherConfig] = None) -> "StorageWatcherBuilder":
        """Equivalent to calling the constructor."""
        return cls(config)

    @property
    def segment(self) -> RequestSegment:
        """The segment configured by this builder."""
        return self._segment

    @property
    def segments(self) -> Tuple[RequestSegment, ...]:
        """This builder's segment and its ancestors, oldest first."""
        return self._lineage

    @staticmethod
    def _text(raw: PathArg, what: str) -> str:
        if not isinstance(raw, (str, os.PathLike)):
            raise ConfigurationError(f"{what} must be a path, got {type(raw).__name__}")
        text = os.fspath(raw)
        if not isinstance(text, str):
            raise ConfigurationError(f"{what} must be a text path: {raw!r}")
        if "\x00" in text:
            raise ConfigurationError(f"{what} contains a NUL byte: {text!r}")
        return text

    def _resolve(self, raw: PathArg, what: str) -> Path:
        text = self._text(raw, what)
        path = Path(text).expanduser()
        if not path.is_absolute():
            base = self._chain.base_dir or Path.cwd()
            path = base / path
        try:
            return path.resolve()
        except (OSError, RuntimeError) as e:
            raise ConfigurationError(f"Cannot resolve {what} {text!r}: {e}") from e

    def watch_file(self, path: PathArg) -> "StorageWatcherBuilder":
        """
        Restrict matching to a file. Can be combined with more calls and
        with watch_files(); the file's directory is watched.

        Raises:
            ConfigurationError: If the path does not name a file
        """
        text = self._text(path, "file path")
        name = Path(text).name
        if not text.strip() or text.endswith(("/", os.sep)) or name in ("", ".", ".."):
            raise ConfigurationError(f"file path does not name a file: {text!r}")
        # Only the directory is canonicalized so a symlinked file keeps its own name
        parent = self._resolve(str(Path(text).parent), "file path")
        self._segment.files.append(parent / name)
        return self

    def watch_files(self, *paths) -> "StorageWatcherBuilder":
        """Same as calling watch_file() for each path."""
        for path in _flatten(paths):
            self.watch_file(path)
        return self

    def watch_directory(self, path: PathArg) -> "StorageWatcherBuilder":
        """
        Watch every entry of a directory. An empty string means the base
        directory. Overrides file restrictions for the same directory
        within this segment.
        """
        self._segment.directories.append(self._resolve(path, "directory"))
        return self

    def watch_directories(self, *paths) -> "StorageWatcherBuilder":
        """Same as calling watch_directory() for each path."""
        for path in _flatten(paths):
            self.watch_directory(path)
        return self

    def specify_event(self, kind: Union[EventKind, str]) -> "StorageWatcherBuilder":
        """
        Add a kind of change to watch for. Without any, CREATE, MODIFY and
        DELETE are all watched.
        """
        if isinstance(kind, str):
            try:
                kind = EventKind(kind.strip().lower())
            except ValueError:
                raise ConfigurationError(f"Unknown event kind: {kind!r}") from None
        if not isinstance(kind, EventKind):
            raise ConfigurationError(f"Unknown event kind: {kind!r}")
        if kind is EventKind.OVERFLOW:
            raise ConfigurationError("OVERFLOW cannot be subscribed to")
        self._segment.event_kinds.add(kind)
        return self

    def specify_events(self, *kinds) -> "StorageWatcherBuilder":
        """Same as calling specify_event() for each kind."""
        for kind in _flatten(kinds):
            self.specify_event(kind)
        return self

    def interval(
        self,
        value: Union[int, float, timedelta, None] = None,
        unit: Union[TimeUnit, str, None] = None,
    ) -> "StorageWatcherBuilder":
        """
        Set the pause between two passes over all units.
        Shared between all segments of the chain; the last call wins.

        Args:
            value: Interval length, or a timedelta. None or <= 0 restores
                the configured default (250 ms unless overridden)
            unit: Unit of value. None means milliseconds
        """
        if unit is None:
            unit = TimeUnit.MILLISECONDS
        elif isinstance(unit, str):
            try:
                unit = TimeUnit(unit.strip().lower())
            except ValueError:
                raise ConfigurationError(f"Unknown time unit: {unit!r}") from None
        elif not isinstance(unit, TimeUnit):
            raise ConfigurationError(f"Unknown time unit: {unit!r}")

        if isinstance(value, timedelta):
            seconds = value.total_seconds()
        elif value is None:
            seconds = 0.0
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            seconds = unit.to_seconds(value)
        else:
            raise ConfigurationError(f"Interval must be a number, got {value!r}")

        self._chain.interval_s = seconds if seconds > 0 else self._chain.settings.interval_s
        return self

    def on_changed(self, callback: OnChanged) -> "StorageWatcherBuilder":
        """Set the callback invoked with (directory, filename) for this segment."""
        if not callable(callback):
            raise ConfigurationError(f"on_changed callback must be callable: {callback!r}")
        self._segment.on_changed = callback
        return self

    def on_error(self, callback: OnError) -> "StorageWatcherBuilder":
        """Set the callback invoked with the exception that ends the watcher loop."""
        if not callable(callback):
            raise ConfigurationError(f"on_error callback must be callable: {callback!r}")
        self._chain.on_error = callback
        return self

    def create_next(self) -> "StorageWatcherBuilder":
        """
        Start a new, independently configured segment linked to this one.
        Not to be mistaken for build().

        Returns:
            A new builder instance
        """
        builder = object.__new__(StorageWatcherBuilder)
        builder._chain = self._chain
        builder._segment = RequestSegment()
        builder._lineage = self._lineage + (builder._segment,)
        return builder

    def build_configs(self) -> List[WatchUnitConfig]:
        """
        Group every segment of the chain without opening any watch.

        Returns:
            Configs of this builder's segment first, then those of its ancestors
        """
        configs: List[WatchUnitConfig] = []
        for segment in reversed(self._lineage):
            configs.extend(group_by_directory(segment))
        return configs

    def build(self) -> StorageWatcher:
        """
        Open one watch unit per grouped directory and wrap them in a watcher.

        Returns:
            A watcher ready to start

        Raises:
            UnitConstructionError: If any directory cannot be watched; units
                opened before the failure are closed again
        """
        settings = self._chain.settings
        units: List[WatchUnit] = []
        try:
            for config in self.build_configs():
                units.append(WatchUnit(config, settings, self._chain.handle_factory))
        except UnitConstructionError as e:
            logger.error(f"Failed to build watcher: {e}")
            for unit in units:
                unit.close()
            raise

        interval_s = self._chain.interval_s or settings.interval_s
        logger.info(
            f"Built storage watcher with {len(units)} unit(s) "
            f"from {len(self._lineage)} segment(s), interval={interval_s}s"
        )
        return StorageWatcher(
            units,
            interval_s=interval_s,
            config=settings,
            on_error=self._chain.on_error,
        )
