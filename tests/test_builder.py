"""Tests for builder module."""

from datetime import timedelta
from pathlib import Path

import pytest

from src.storagewatch.builder import (
    RequestSegment,
    StorageWatcherBuilder,
    group_by_directory,
)
from src.storagewatch.config import WatcherConfig
from src.storagewatch.exceptions import ConfigurationError, UnitConstructionError
from src.storagewatch.models import (
    DEFAULT_EVENT_KINDS,
    EventKind,
    TimeUnit,
    noop_callback,
)
from src.storagewatch.watcher import StorageWatcher


def on_a(directory, filename):
    pass


def on_b(directory, filename):
    pass


class TestGroupByDirectory:
    """Tests for the grouping of one segment."""

    def test_files_grouped_by_parent(self, tmp_path):
        other = tmp_path / "other"
        segment = RequestSegment(
            files=[tmp_path / "a.txt", tmp_path / "b.txt", other / "c.txt"],
        )
        configs = group_by_directory(segment)

        assert [c.directory for c in configs] == [tmp_path, other]
        assert configs[0].files == {"a.txt", "b.txt"}
        assert configs[1].files == {"c.txt"}

    def test_directory_watches_all_files(self, tmp_path):
        configs = group_by_directory(RequestSegment(directories=[tmp_path]))
        assert len(configs) == 1
        assert configs[0].watches_all_files

    def test_explicit_directory_overrides_file_restriction(self, tmp_path):
        segment = RequestSegment(
            directories=[tmp_path],
            files=[tmp_path / "a.txt"],
        )
        configs = group_by_directory(segment)

        assert len(configs) == 1
        assert configs[0].files == frozenset()

    def test_override_only_applies_to_same_directory(self, tmp_path):
        sub = tmp_path / "sub"
        segment = RequestSegment(
            directories=[tmp_path],
            files=[sub / "a.txt"],
        )
        configs = {c.directory: c for c in group_by_directory(segment)}

        assert configs[tmp_path].watches_all_files
        assert configs[sub].files == {"a.txt"}

    def test_duplicate_directory_yields_one_group(self, tmp_path):
        segment = RequestSegment(directories=[tmp_path, tmp_path])
        assert len(group_by_directory(segment)) == 1

    def test_segment_kinds_and_callback_are_applied(self, tmp_path):
        segment = RequestSegment(
            directories=[tmp_path],
            event_kinds={EventKind.DELETE},
            on_changed=on_a,
        )
        config = group_by_directory(segment)[0]
        assert config.event_kinds == {EventKind.DELETE}
        assert config.on_changed is on_a

    def test_empty_segment(self):
        assert group_by_directory(RequestSegment()) == []


class TestBuilderPaths:
    """Tests for path handling in the builder."""

    def test_relative_file_resolves_against_base_dir(self, tmp_path):
        configs = StorageWatcherBuilder(base_dir=tmp_path).watch_file("a.txt").build_configs()
        assert configs[0].directory == tmp_path.resolve()
        assert configs[0].files == {"a.txt"}

    def test_relative_file_resolves_against_cwd(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        configs = StorageWatcherBuilder().watch_file("a.txt").build_configs()
        assert configs[0].directory == tmp_path.resolve()

    def test_empty_directory_means_base_dir(self, tmp_path):
        configs = StorageWatcherBuilder(base_dir=tmp_path).watch_directory("").build_configs()
        assert configs[0].directory == tmp_path.resolve()

    def test_paths_are_canonical(self, tmp_path):
        (tmp_path / "sub").mkdir()
        builder = StorageWatcherBuilder(base_dir=tmp_path)
        configs = (
            builder
            .watch_directory("sub/..")
            .watch_file(str(tmp_path / "sub" / ".." / "a.txt"))
            .build_configs()
        )
        assert len(configs) == 1
        assert configs[0].directory == tmp_path.resolve()

    def test_symlinked_file_keeps_its_name(self, tmp_path):
        real = tmp_path / "real.yaml"
        real.write_text("x")
        link = tmp_path / "link.yaml"
        link.symlink_to(real)

        configs = StorageWatcherBuilder().watch_file(link).build_configs()
        assert configs[0].files == {"link.yaml"}

    def test_accepts_path_objects(self, tmp_path):
        configs = (
            StorageWatcherBuilder()
            .watch_directory(tmp_path)
            .watch_file(tmp_path / "other" / "a.txt")
            .build_configs()
        )
        assert [c.directory for c in configs] == [tmp_path.resolve(), (tmp_path / "other").resolve()]

    def test_plural_methods_accept_varargs_and_iterables(self, tmp_path):
        first = tmp_path / "one"
        second = tmp_path / "two"
        builder = StorageWatcherBuilder()
        builder.watch_directories(first, second)
        builder.watch_files([first / "a.txt", second / "b.txt"])

        assert builder.segment.directories == [first.resolve(), second.resolve()]
        assert builder.segment.files == [first.resolve() / "a.txt", second.resolve() / "b.txt"]

    @pytest.mark.parametrize("bad", ["", "   ", "dir/", ".", ".."])
    def test_file_path_must_name_a_file(self, bad):
        with pytest.raises(ConfigurationError):
            StorageWatcherBuilder().watch_file(bad)

    def test_nul_byte_rejected(self):
        with pytest.raises(ConfigurationError, match="NUL"):
            StorageWatcherBuilder().watch_directory("bad\x00dir")
        with pytest.raises(ConfigurationError, match="NUL"):
            StorageWatcherBuilder().watch_file("bad\x00.txt")

    @pytest.mark.parametrize("bad", [None, 42, b"bytes/path"])
    def test_non_path_rejected(self, bad):
        with pytest.raises(ConfigurationError):
            StorageWatcherBuilder().watch_file(bad)
        with pytest.raises(ConfigurationError):
            StorageWatcherBuilder().watch_directory(bad)

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            StorageWatcherBuilder().watch_file("")


class TestBuilderEvents:
    """Tests for event kind selection."""

    def test_default_event_kinds(self, tmp_path):
        config = StorageWatcherBuilder().watch_directory(tmp_path).build_configs()[0]
        assert config.event_kinds == DEFAULT_EVENT_KINDS

    def test_events_accumulate(self, tmp_path):
        config = (
            StorageWatcherBuilder()
            .specify_event(EventKind.CREATE)
            .specify_events(EventKind.DELETE)
            .watch_directory(tmp_path)
            .build_configs()[0]
        )
        assert config.event_kinds == {EventKind.CREATE, EventKind.DELETE}

    def test_events_from_strings(self):
        builder = StorageWatcherBuilder().specify_events(["Create", "modify"])
        assert builder.segment.event_kinds == {EventKind.CREATE, EventKind.MODIFY}

    def test_unknown_event_rejected(self):
        with pytest.raises(ConfigurationError, match="Unknown event kind"):
            StorageWatcherBuilder().specify_event("rename")
        with pytest.raises(ConfigurationError, match="Unknown event kind"):
            StorageWatcherBuilder().specify_event(3)

    def test_overflow_rejected(self):
        with pytest.raises(ConfigurationError, match="OVERFLOW"):
            StorageWatcherBuilder().specify_event(EventKind.OVERFLOW)


class TestBuilderInterval:
    """Tests for the shared poll interval."""

    def test_default_interval(self, fake_handles):
        builder = StorageWatcherBuilder(handle_factory=fake_handles)
        assert builder.build().interval == pytest.approx(0.25)

    def test_interval_with_unit(self, fake_handles):
        builder = StorageWatcherBuilder(handle_factory=fake_handles).interval(2, TimeUnit.SECONDS)
        assert builder.build().interval == 2.0

    def test_unit_defaults_to_milliseconds(self, fake_handles):
        builder = StorageWatcherBuilder(handle_factory=fake_handles).interval(10)
        assert builder.build().interval == pytest.approx(0.01)

    def test_unit_from_string(self, fake_handles):
        builder = StorageWatcherBuilder(handle_factory=fake_handles).interval(1, "min")
        assert builder.build().interval == 60.0

    def test_timedelta(self, fake_handles):
        builder = StorageWatcherBuilder(handle_factory=fake_handles).interval(timedelta(seconds=3))
        assert builder.build().interval == 3.0

    @pytest.mark.parametrize("value", [None, 0, -5])
    def test_invalid_value_resets_to_default(self, fake_handles, value):
        builder = StorageWatcherBuilder(handle_factory=fake_handles)
        builder.interval(5, TimeUnit.SECONDS).interval(value)
        assert builder.build().interval == pytest.approx(0.25)

    def test_default_comes_from_config(self, fake_handles):
        builder = StorageWatcherBuilder(
            config=WatcherConfig(interval_ms=400),
            handle_factory=fake_handles,
        )
        assert builder.interval(None).build().interval == pytest.approx(0.4)

    def test_interval_is_shared_across_chain(self, fake_handles):
        first = StorageWatcherBuilder(handle_factory=fake_handles).interval(1, TimeUnit.SECONDS)
        last = first.create_next().interval(20)
        assert last.build().interval == pytest.approx(0.02)
        assert first.build().interval == pytest.approx(0.02)

    def test_unknown_unit_rejected(self):
        with pytest.raises(ConfigurationError, match="time unit"):
            StorageWatcherBuilder().interval(1, "fortnight")

    def test_non_numeric_value_rejected(self):
        with pytest.raises(ConfigurationError):
            StorageWatcherBuilder().interval("10")


class TestBuilderChain:
    """Tests for chained segments."""

    def test_create_next_returns_new_builder(self):
        first = StorageWatcherBuilder()
        second = first.create_next()
        assert second is not first
        assert second.segments == (first.segment, second.segment)

    def test_segments_stay_independent(self, tmp_path):
        last = (
            StorageWatcherBuilder()
            .specify_event(EventKind.CREATE)
            .watch_file(tmp_path / "a.txt")
            .on_changed(on_a)
            .create_next()
            .specify_event(EventKind.MODIFY)
            .watch_file(tmp_path / "b.txt")
            .on_changed(on_b)
        )
        configs = last.build_configs()

        assert len(configs) == 2
        assert configs[0].files == {"b.txt"}
        assert configs[0].event_kinds == {EventKind.MODIFY}
        assert configs[0].on_changed is on_b
        assert configs[1].files == {"a.txt"}
        assert configs[1].event_kinds == {EventKind.CREATE}
        assert configs[1].on_changed is on_a

    def test_same_directory_in_two_segments_is_not_merged(self, tmp_path):
        last = (
            StorageWatcherBuilder()
            .watch_directory(tmp_path)
            .create_next()
            .watch_file(tmp_path / "a.txt")
        )
        configs = last.build_configs()

        assert [c.directory for c in configs] == [tmp_path.resolve(), tmp_path.resolve()]
        assert configs[0].files == {"a.txt"}
        assert configs[1].watches_all_files

    def test_most_recent_segment_first(self, tmp_path):
        dirs = [tmp_path / name for name in ("first", "second", "third")]
        builder = StorageWatcherBuilder().watch_directory(dirs[0])
        builder = builder.create_next().watch_directory(dirs[1])
        builder = builder.create_next().watch_directory(dirs[2])

        assert [c.directory for c in builder.build_configs()] == [
            d.resolve() for d in reversed(dirs)
        ]

    def test_build_from_ancestor_excludes_descendants(self, tmp_path):
        first = StorageWatcherBuilder().watch_directory(tmp_path / "first")
        first.create_next().watch_directory(tmp_path / "second")

        configs = first.build_configs()
        assert [c.directory for c in configs] == [(tmp_path / "first").resolve()]

    def test_unset_callback_is_noop(self, tmp_path):
        config = StorageWatcherBuilder().watch_directory(tmp_path).build_configs()[0]
        assert config.on_changed is noop_callback

    def test_callback_must_be_callable(self):
        with pytest.raises(ConfigurationError):
            StorageWatcherBuilder().on_changed("print")
        with pytest.raises(ConfigurationError):
            StorageWatcherBuilder().on_error(None)

    def test_get_builder(self):
        assert isinstance(StorageWatcherBuilder.get_builder(), StorageWatcherBuilder)


class TestBuilderBuild:
    """Tests for build()."""

    def test_build_opens_one_unit_per_config(self, tmp_path, fake_handles):
        watcher = (
            StorageWatcherBuilder(handle_factory=fake_handles)
            .specify_event(EventKind.CREATE)
            .watch_files(tmp_path / "a.txt", tmp_path / "sub" / "b.txt")
            .create_next()
            .watch_directory(tmp_path)
            .build()
        )

        assert isinstance(watcher, StorageWatcher)
        assert len(watcher.units) == 3
        assert len(fake_handles.handles) == 3
        assert [h.directory for h in fake_handles.handles] == [
            tmp_path.resolve(),
            tmp_path.resolve(),
            (tmp_path / "sub").resolve(),
        ]
        assert fake_handles.handles[0].registered == set(DEFAULT_EVENT_KINDS)
        assert fake_handles.handles[1].registered == {EventKind.CREATE}

    def test_build_with_nothing_configured(self, fake_handles):
        watcher = StorageWatcherBuilder(handle_factory=fake_handles).build()
        assert watcher.units == ()

    def test_build_passes_error_callback(self, tmp_path, fake_handles):
        errors = []
        watcher = (
            StorageWatcherBuilder(handle_factory=fake_handles)
            .watch_directory(tmp_path)
            .on_error(errors.append)
            .build()
        )
        assert watcher.on_error == errors.append

    def test_failed_unit_fails_build_and_closes_others(self, tmp_path, fake_handles):
        good = tmp_path / "good"
        bad = tmp_path / "bad"

        def factory(config, settings):
            handle = fake_handles(config, settings)
            if config.directory == bad.resolve():
                handle.register_error = PermissionError("denied")
            return handle

        builder = (
            StorageWatcherBuilder(handle_factory=factory)
            .watch_directory(good)
            .watch_directory(bad)
        )
        with pytest.raises(UnitConstructionError) as exc_info:
            builder.build()

        assert exc_info.value.directory == bad.resolve()
        assert all(h.closed for h in fake_handles.handles)

    def test_missing_directory_fails_build(self, tmp_path):
        missing = tmp_path / "missing"
        builder = StorageWatcherBuilder().watch_file(missing / "a.txt")

        with pytest.raises(UnitConstructionError) as exc_info:
            builder.build()

        assert exc_info.value.directory == missing.resolve()
        assert "does not exist" in str(exc_info.value)

    def test_build_real_directory(self, tmp_path):
        watcher = StorageWatcherBuilder().watch_directory(tmp_path).build()
        try:
            assert len(watcher.units) == 1
            assert watcher.units[0].active
        finally:
            watcher.close()
        assert not watcher.units[0].active
