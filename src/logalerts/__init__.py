"""logalerts - log aggregation into chat alerts.

Collapses repeating log messages into counted samples and periodically
delivers them as Telegram messages.
"""

from logalerts.worker import (
    DEFAULT_PERIOD,
    Worker,
    WorkerState,
    WorkerStoppedError,
    start,
)
from logalerts.adapters.logging import AlertHandler
from logalerts.adapters.senders import InMemorySender, TelegramSender
from logalerts.core.models import Destination, LogEvent, RenderSettings, Sample
from logalerts.core.ports import SenderPort

__all__ = [
    "DEFAULT_PERIOD",
    "AlertHandler",
    "Destination",
    "InMemorySender",
    "LogEvent",
    "RenderSettings",
    "Sample",
    "SenderPort",
    "TelegramSender",
    "Worker",
    "WorkerState",
    "WorkerStoppedError",
    "start",
]
