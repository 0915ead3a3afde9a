"""Active and finalized batch pair."""

import time
from collections.abc import Callable

from logalerts.core.batch import Batch
from logalerts.core.models import LogEvent


class Merger:
    """Owns the batch currently accumulating and the one awaiting delivery.

    Not thread-safe: a single owner (the worker loop) drives it.

    Args:
        clock: Source of unix timestamps for incoming events.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self.active = Batch()
        self.finalized = Batch()
        self._clock = clock

    def push_message(self, event: LogEvent, now: float | None = None) -> None:
        """Fold an event into the active batch. Empty messages are ignored."""
        if not event.message:
            return
        self.active.push(event, self._clock() if now is None else now)

    def finalized_batch(self) -> Batch:
        """Fold the active batch into the finalized one and return it."""
        self.finalized.take_from(self.active)
        return self.finalized

    def take_finalized(self) -> Batch:
        """Detach the finalized batch, leaving an empty one in its place."""
        batch = self.finalized_batch()
        self.finalized = Batch()
        return batch
