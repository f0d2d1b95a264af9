"""Shared fixtures for storagewatch tests."""

import threading
import time
from collections import deque

import pytest


class FakeHandle:
    """In-memory stand-in for DirectoryWatchHandle."""

    def __init__(self, directory):
        self.directory = directory
        self.batches = deque()
        self.registered = None
        self.register_error = None
        self.valid = True
        self.reset_calls = 0
        self.closed = False

    def register(self, kinds):
        if self.register_error is not None:
            raise self.register_error
        self.registered = set(kinds)

    def feed(self, *events):
        self.batches.append(list(events))

    def poll(self, timeout):
        if self.batches:
            return self.batches.popleft()
        time.sleep(min(timeout, 0.005))
        return []

    def reset(self):
        self.reset_calls += 1
        return self.valid

    def close(self):
        self.closed = True


@pytest.fixture
def fake_handles():
    """A handle factory that records the FakeHandles it creates."""
    handles = []

    def factory(config, settings):
        handle = FakeHandle(config.directory)
        handles.append(handle)
        return handle

    factory.handles = handles
    return factory


@pytest.fixture
def wait_for():
    """Poll a predicate until it holds or the timeout expires."""

    def wait(predicate, timeout=2.0, interval=0.01):
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return predicate()

    return wait


class Recorder:
    """A thread-safe on_changed callback that records its calls."""

    def __init__(self):
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, directory, filename):
        with self._lock:
            self.calls.append((directory, filename))

    @property
    def count(self):
        with self._lock:
            return len(self.calls)

    def names(self):
        with self._lock:
            return [filename for _, filename in self.calls]


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def make_recorder():
    return Recorder
