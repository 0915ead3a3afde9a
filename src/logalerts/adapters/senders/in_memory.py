"""In-memory sender adapter."""

import threading
from collections.abc import Sequence

from logalerts.core.models import Destination


class InMemorySender:
    """In-memory implementation of SenderPort.

    Records every delivery instead of transmitting it. Suitable for testing
    and for wiring the engine up before a chat is available. Deliveries are
    recorded on the worker thread, so accessors are guarded by a lock.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._deliveries: list[tuple[list[str], Destination]] = []

    async def send(self, payloads: Sequence[str], destination: Destination) -> None:
        """Record payloads together with their destination."""
        with self._lock:
            self._deliveries.append((list(payloads), destination))

    @property
    def deliveries(self) -> list[tuple[list[str], Destination]]:
        """Snapshot of recorded (payloads, destination) pairs."""
        with self._lock:
            return list(self._deliveries)

    @property
    def payloads(self) -> list[str]:
        """All recorded payloads in delivery order."""
        with self._lock:
            return [p for payloads, _ in self._deliveries for p in payloads]

    def clear(self) -> None:
        """Forget all recorded deliveries."""
        with self._lock:
            self._deliveries.clear()
