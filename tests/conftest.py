"""Shared test fixtures for all test modules."""

import time
from collections.abc import Callable, Iterator
from traceback import FrameSummary

import pytest

from logalerts.adapters.senders.in_memory import InMemorySender
from logalerts.core.batch import Batch
from logalerts.core.models import LogEvent
from logalerts.worker import Worker


@pytest.fixture
def sender() -> InMemorySender:
    """Fresh in-memory sender recording deliveries."""
    return InMemorySender()


@pytest.fixture
def errors() -> list[str]:
    """List collecting texts passed to an error handler."""
    return []


@pytest.fixture
def make_worker(
    sender: InMemorySender, errors: list[str]
) -> Iterator[Callable[..., Worker]]:
    """Factory fixture that starts workers and stops them after the test.

    Usage:
        def test_something(make_worker, sender):
            worker = make_worker(period=60)
            worker.push_message(30, 0, "disk full")
            worker.stop()
            assert sender.payloads
    """
    started: list[Worker] = []

    def _make(**options: object) -> Worker:
        options.setdefault("sender", sender)
        options.setdefault("error_handler", errors.append)
        worker = Worker(**options).start()  # type: ignore[arg-type]
        started.append(worker)
        return worker

    yield _make

    for worker in started:
        worker.stop()


@pytest.fixture
def wait_until() -> Callable[[Callable[[], bool], float], bool]:
    """Poll a predicate until it holds or the timeout expires.

    Used in tests to observe work done on the worker thread.
    """

    def _wait(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(0.01)
        return predicate()

    return _wait


@pytest.fixture
def make_batch() -> Callable[..., Batch]:
    """Factory fixture building a batch from (message, timestamp) pairs."""

    def _make(*entries: tuple[str, float], level: int = 30) -> Batch:
        batch = Batch()
        for message, ts in entries:
            batch.push(LogEvent(level=level, fingerprint=0, message=message), ts)
        return batch

    return _make


@pytest.fixture
def make_frame() -> Callable[..., FrameSummary]:
    """Factory fixture building frame summaries without a real stack."""

    def _make(filename: str, lineno: int, name: str = "handler") -> FrameSummary:
        return FrameSummary(filename, lineno, name, lookup_line=False)

    return _make
