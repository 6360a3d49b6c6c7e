"""Pytest configuration for logflux test suite."""

import os
import threading

import pytest

# Ensure test environment variables are set before any imports
os.environ.setdefault("LOGFLUX_LOG_LEVEL", "warning")

from logflux.errors import DestinationError  # noqa: E402


class FakeWriter:
    """In-memory PointWriter.

    fail: number of upcoming writes that raise DestinationError.
    release: cleared to make write() hang until it is set again.
    """

    endpoint = "fake://influx"

    def __init__(self):
        self.fail = 0
        self.ping_error = None
        self.attempts = []
        self.batches = []
        self.closed = False
        self.release = threading.Event()
        self.release.set()

    def ping(self):
        if self.ping_error is not None:
            raise self.ping_error

    def write(self, points):
        self.attempts.append(list(points))
        self.release.wait(5)
        if self.fail > 0:
            self.fail -= 1
            raise DestinationError("destination down")
        self.batches.append(list(points))

    def close(self):
        self.closed = True


class DictEngine:
    """Extractor returning canned captures per pattern.

    A pattern mapped to an exception instance raises it.
    """

    def __init__(self, captures=None):
        self.captures = captures or {}
        self.calls = []

    def parse(self, pattern, text):
        self.calls.append((pattern, text))
        result = self.captures.get(pattern, {})
        if isinstance(result, Exception):
            raise result
        return dict(result)


@pytest.fixture
def fake_writer():
    writer = FakeWriter()
    yield writer
    writer.release.set()


@pytest.fixture
def dict_engine():
    return DictEngine()
