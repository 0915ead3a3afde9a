"""Telegram MarkdownV2 encoder for sample batches."""

from collections.abc import Callable, Sequence
from datetime import datetime, tzinfo
from traceback import FrameSummary

from logalerts.core.batch import Batch
from logalerts.core.fingerprint import ELLIPSIS
from logalerts.core.models import RenderSettings, Sample

MAX_MESSAGE_SIZE = 4096

RESERVED_CHARS = frozenset("\\_*[]()~`>#+-=|{}.!")
FENCE = "```"

_REPLACEMENT_CHAR = "\ufffd"


def _undecodable_hex(char: str) -> str | None:
    """Return the hex of the raw bytes behind char, None if char is valid."""
    code = ord(char)
    if 0xDC80 <= code <= 0xDCFF:
        # byte smuggled in by the surrogateescape error handler
        return f"{code - 0xDC00:02x}"
    if 0xD800 <= code <= 0xDFFF:
        return char.encode("utf-8", errors="surrogatepass").hex()
    if char == _REPLACEMENT_CHAR:
        return char.encode("utf-8").hex()
    return None


def escape_fixed(value: str) -> str:
    """Prepare text for a fenced block: only undecodable data is rewritten.

    Args:
        value: Raw text.

    Returns:
        Text with undecodable characters replaced by their hex escape.
    """
    out = []
    for char in value:
        raw = _undecodable_hex(char)
        out.append(char if raw is None else "\\\\x" + raw)
    return "".join(out)


def escape_markdown(value: str) -> str:
    """Escape text for MarkdownV2 outside of fenced blocks.

    Args:
        value: Raw text.

    Returns:
        Text with every reserved character backslash-prefixed and undecodable
        characters replaced by their hex escape.
    """
    out = []
    for char in value:
        raw = _undecodable_hex(char)
        if raw is not None:
            out.append("\\\\x" + raw)
            continue
        if char in RESERVED_CHARS:
            out.append("\\")
        out.append(char)
    return "".join(out)


def default_intro(level: int, count: int) -> str:
    """Intro line used when no intro callback is configured."""
    return f"_*{count}* messages like:_\n"


def _clock(timestamp: float, tz: tzinfo) -> str:
    return datetime.fromtimestamp(timestamp, tz).strftime("%H:%M:%S")


def _instant(timestamp: float, tz: tzinfo) -> str:
    return datetime.fromtimestamp(timestamp, tz).strftime("%H:%M:%S.%f")[:-3]


def _zone_name(tz: tzinfo) -> str:
    return tz.tzname(None) or "UTC"


def _header(batch: Batch, settings: RenderSettings) -> str:
    parts = []
    if settings.caption:
        parts.append(f"*{escape_markdown(settings.caption)}*\n")
    start, finish = batch.started_at, batch.finished_at
    if start is not None and finish is not None and start != finish:
        tz = settings.timezone
        parts.append(
            f"{_clock(start, tz)} \\- {_clock(finish, tz)} "
            f"{escape_markdown(_zone_name(tz))}\n"
        )
    return "".join(parts)


def _local_callers(frames: Sequence[FrameSummary], src_root: str) -> list[str]:
    return [
        f"{frame.filename[len(src_root):]}:{frame.lineno}"
        for frame in frames
        if frame.filename.startswith(src_root)
    ]


def _fit(text: str, escape: Callable[[str], str], budget: int) -> str:
    """Escape text, cutting it with an ellipsis to stay within budget."""
    escaped = escape(text)
    if len(escaped) <= budget:
        return escaped
    room = budget - len(ELLIPSIS)
    if room < 0:
        return ""
    out = []
    size = 0
    for char in text:
        piece = escape(char)
        if size + len(piece) > room:
            break
        out.append(piece)
        size += len(piece)
    return "".join(out) + ELLIPSIS


def format_sample(
    sample: Sample, settings: RenderSettings, limit: int = MAX_MESSAGE_SIZE
) -> str:
    """Render one sample as a self-contained MarkdownV2 block.

    The message text is cut with an ellipsis when the block would exceed
    limit; if that is not enough the caller section is left out. Only an
    intro or timing line longer than limit leaves the block above it.

    Args:
        sample: The sample to render.
        settings: Presentation settings.
        limit: Maximum block size in characters.

    Returns:
        Block text without leading or trailing separators.
    """
    tz = settings.timezone
    intro = settings.intro or default_intro
    parts = [intro(sample.level, sample.count)]

    if sample.first_seen_at == sample.last_seen_at:
        parts.append(f"time: `{_instant(sample.first_seen_at, tz)}`\n")
    else:
        delta = sample.last_seen_at - sample.first_seen_at
        parts.append(
            f"first: `{_instant(sample.first_seen_at, tz)}`\n"
            f"last: `+{delta:.3f} sec`\n"
        )
    head = "".join(parts)

    # The opening fence needs its own line or the first word becomes the
    # highlighter name. A space before the closing fence survives as is.
    if "\n" in sample.message:
        opening, closing, escape = f"message:\n{FENCE}\n", f" {FENCE}", escape_fixed
    else:
        opening, closing, escape = "message: `", "`", escape_markdown

    tail = ""
    callers = _local_callers(sample.call_stack, settings.src_root)
    if len(callers) == 1:
        tail = f"\ncaller: `{escape_fixed(callers[0])}`"
    elif callers:
        listing = "\n".join(escape_fixed(c) for c in callers)
        tail = f"\ncallers:\n{FENCE}\n{listing}\n{FENCE}"

    frame = len(head) + len(opening) + len(closing)
    if frame + len(tail) > limit:
        tail = ""
    text = _fit(sample.message, escape, limit - frame - len(tail))
    return f"{head}{opening}{text}{closing}{tail}"


def _separator(payload: str) -> str:
    if not payload:
        return ""
    if payload.endswith("\n") or payload.endswith(FENCE):
        return "\n"
    return "\n\n"


def render_batch(
    batch: Batch,
    settings: RenderSettings,
    max_size: int = MAX_MESSAGE_SIZE,
) -> list[str]:
    """Render a batch into size-bounded MarkdownV2 payloads.

    Sample blocks are packed greedily in chronological order. A block that
    does not fit closes the current payload and opens the next one, so every
    sample lands in exactly one payload. No block is larger than max_size,
    and the first block is shortened rather than leaving the header alone.

    Args:
        batch: The batch to render.
        settings: Presentation settings snapshot.
        max_size: Payload size ceiling in characters.

    Returns:
        Payloads in delivery order. Empty list for an empty batch.
    """
    if batch.is_empty():
        return []

    payloads = []
    current = _header(batch, settings)
    first = True
    for sample in batch:
        separator = _separator(current)
        block = format_sample(sample, settings, max_size)[:max_size]
        fits = len(current) + len(separator) + len(block) <= max_size
        if not fits and first and current:
            room = max_size - len(current) - len(separator)
            trimmed = format_sample(sample, settings, room)
            if len(trimmed) <= room:
                block, fits = trimmed, True
        first = False
        if not fits:
            payloads.append(current)
            current = block
            continue
        current += separator + block

    if current:
        payloads.append(current)
    return payloads
