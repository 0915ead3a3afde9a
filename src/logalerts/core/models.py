"""Core domain models for alert aggregation."""

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, tzinfo
from traceback import FrameSummary

# (level, count) -> intro line of a sample block, trailing newline included
IntroFormatter = Callable[[int, int], str]


@dataclass(frozen=True)
class LogEvent:
    """A single log call handed to the aggregation engine.

    Attributes:
        level: Small integer severity (stdlib logging levels in practice).
        fingerprint: 64-bit grouping key. 0 means the engine computes one
            from the level and message.
        message: The log message.
        call_stack: Caller frames, innermost first. May be empty.
    """

    level: int
    fingerprint: int
    message: str
    call_stack: Sequence[FrameSummary] = ()


@dataclass
class Sample:
    """Counted representative of all events sharing one fingerprint.

    Attributes:
        level: Level of the first event seen.
        first_seen_at: Unix timestamp of the first occurrence.
        last_seen_at: Unix timestamp of the latest occurrence.
        count: Number of occurrences, always >= 1.
        message: Representative message, possibly truncated with an ellipsis.
        call_stack: Frames captured with the first occurrence.
    """

    level: int
    first_seen_at: float
    last_seen_at: float
    message: str
    count: int = 1
    call_stack: tuple[FrameSummary, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Destination:
    """Telegram chat that receives the alerts.

    Attributes:
        api_token: Bot API token.
        chat_id: Target chat id. 0 means no destination is configured.
    """

    api_token: str = ""
    chat_id: int = 0

    @property
    def configured(self) -> bool:
        """Return True if a target chat is set."""
        return self.chat_id != 0


@dataclass(frozen=True)
class RenderSettings:
    """Presentation settings snapshot used to render one batch.

    Attributes:
        caption: Bold caption placed on top of the first payload.
        timezone: Zone all timestamps are rendered in.
        src_root: Path prefix of frames worth showing as callers.
        intro: Optional callback producing the intro line of a sample block.
    """

    caption: str = ""
    timezone: tzinfo = UTC
    src_root: str = ""
    intro: IntroFormatter | None = None
