"""Port interfaces for delivery adapters.

The worker depends only on this protocol, not on a concrete transport.
"""

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from logalerts.core.models import Destination


@runtime_checkable
class SenderPort(Protocol):
    """Port for delivering rendered payloads.

    Adapters implementing this protocol transmit text payloads to a chat.
    Examples: TelegramSender, InMemorySender.
    """

    async def send(self, payloads: Sequence[str], destination: Destination) -> None:
        """Deliver payloads to destination.

        Returns once every payload has been attempted. Failures are reported
        by the adapter itself and never raised.
        """
        ...
