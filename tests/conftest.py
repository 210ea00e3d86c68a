"""Shared pytest fixtures for the gatherlogs test suite."""

import threading
import time
from datetime import datetime, timezone

import pytest

from gatherlogs.gatherer import Gatherer
from gatherlogs.models import LogLevel, LogMessage
from gatherlogs.server import GathererServer


def _wait_for(predicate, timeout: float = 5.0, interval: float = 0.02) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture()
def wait_for():
    """Return a helper that polls a predicate until it holds or times out."""
    return _wait_for


@pytest.fixture()
def make_message():
    """Return a factory for LogMessage instances with fixed defaults."""
    def _make(message="hello", server="web-1", level=LogLevel.INFO, time=None):
        return LogMessage(
            server=server,
            log_level=level,
            time=time or datetime(2024, 1, 15, 8, 23, 45, 123456, tzinfo=timezone.utc),
            message=message,
        )
    return _make


@pytest.fixture()
def running_gatherer():
    """Start a GathererServer on a random port.

    Yields (gatherer, server, host, port); the queue holds up to 100
    messages unless the test builds its own.
    """
    shutdown = threading.Event()
    gatherer = Gatherer(queue_size=100)
    server = GathererServer(gatherer, "127.0.0.1", 0, shutdown)
    server.bind()
    threading.Thread(target=server.start, daemon=True).start()
    host, port = server.server_address
    try:
        yield gatherer, server, host, port
    finally:
        server.stop()
