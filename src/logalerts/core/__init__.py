"""Core aggregation engine: models, fingerprinting, batches and encoding."""

from logalerts.core.batch import Batch
from logalerts.core.fingerprint import fingerprint_message, fnv1a_64
from logalerts.core.merger import Merger
from logalerts.core.models import (
    Destination,
    IntroFormatter,
    LogEvent,
    RenderSettings,
    Sample,
)
from logalerts.core.ports import SenderPort

__all__ = [
    "Batch",
    "Destination",
    "IntroFormatter",
    "LogEvent",
    "Merger",
    "RenderSettings",
    "Sample",
    "SenderPort",
    "fingerprint_message",
    "fnv1a_64",
]
