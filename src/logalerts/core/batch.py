"""Time-bounded collection of deduplicated samples."""

from collections.abc import Iterator

from logalerts.core.fingerprint import (
    MESSAGE_LIMIT,
    fingerprint_message,
    truncate,
)
from logalerts.core.models import LogEvent, Sample


class Batch:
    """Samples keyed by fingerprint, kept in first-occurrence order.

    Attributes:
        samples: Mapping of fingerprint to its sample.
        chronological_order: Fingerprints sorted by first occurrence.
        started_at: Timestamp of the first push, None when empty.
        finished_at: Timestamp of the latest push, None when empty.
    """

    def __init__(self) -> None:
        self.samples: dict[int, Sample] = {}
        self.chronological_order: list[int] = []
        self.started_at: float | None = None
        self.finished_at: float | None = None

    def __len__(self) -> int:
        return len(self.chronological_order)

    def __iter__(self) -> Iterator[Sample]:
        """Iterate over samples in chronological order."""
        for key in self.chronological_order:
            yield self.samples[key]

    def is_empty(self) -> bool:
        """Return True if the batch holds no samples."""
        return not self.chronological_order

    def clear(self) -> None:
        """Drop all samples and reset the time bounds."""
        self.samples = {}
        self.chronological_order = []
        self.started_at = None
        self.finished_at = None

    def push(self, event: LogEvent, now: float) -> None:
        """Count an event, creating a sample on first occurrence.

        Args:
            event: The event to fold in.
            now: Timestamp of the occurrence.
        """
        key = event.fingerprint
        cut = 0
        if key == 0:
            key, cut = fingerprint_message(event.level, event.message)

        if self.started_at is None:
            self.started_at = now
        self.finished_at = now

        sample = self.samples.get(key)
        if sample is not None:
            sample.count += 1
            sample.last_seen_at = now
            return

        if cut == 0:
            # external fingerprint: flat truncation
            message = truncate(event.message, MESSAGE_LIMIT)
        else:
            message = truncate(event.message, cut)

        self.samples[key] = Sample(
            level=event.level,
            first_seen_at=now,
            last_seen_at=now,
            message=message,
            call_stack=tuple(event.call_stack),
        )
        self.chronological_order.append(key)

    def take_from(self, other: "Batch") -> None:
        """Move all samples of other into this batch and clear other.

        Samples sharing a fingerprint are combined: counts are summed and
        the seen range is widened. The chronological order is re-sorted
        by first occurrence afterwards.

        Args:
            other: Batch to drain.
        """
        if other.is_empty():
            return

        if self.is_empty():
            self._swap(other)
            return

        for key in other.chronological_order:
            incoming = other.samples[key]
            sample = self.samples.get(key)
            if sample is None:
                self.samples[key] = incoming
                self.chronological_order.append(key)
                continue
            sample.count += incoming.count
            sample.first_seen_at = min(sample.first_seen_at, incoming.first_seen_at)
            sample.last_seen_at = max(sample.last_seen_at, incoming.last_seen_at)

        if other.started_at is not None and (
            self.started_at is None or other.started_at < self.started_at
        ):
            self.started_at = other.started_at
        if other.finished_at is not None and (
            self.finished_at is None or other.finished_at > self.finished_at
        ):
            self.finished_at = other.finished_at

        self.chronological_order.sort(key=lambda k: self.samples[k].first_seen_at)
        other.clear()

    def _swap(self, other: "Batch") -> None:
        self.samples, other.samples = other.samples, self.samples
        self.chronological_order, other.chronological_order = (
            other.chronological_order,
            self.chronological_order,
        )
        self.started_at, other.started_at = other.started_at, self.started_at
        self.finished_at, other.finished_at = other.finished_at, self.finished_at
