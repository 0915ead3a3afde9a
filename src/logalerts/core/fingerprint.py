"""Fingerprinting of log messages for deduplication.

Volatile payloads (ids, addresses, counters, timestamps embedded in text)
are stripped from a message before hashing, so templated log lines
collapse into one sample even when their parameters differ.
"""

FNV64_OFFSET_BASIS = 0xCBF29CE484222325
FNV64_PRIME = 0x100000001B3
_MASK64 = 0xFFFFFFFFFFFFFFFF

ESSENCE_LIMIT = 250
MESSAGE_LIMIT = 250
ELLIPSIS = "…"

_HEX_LETTERS = frozenset("abcdefABCDEF")


def fnv1a_64(data: bytes | str) -> int:
    """Return the 64-bit FNV-1a hash of data.

    Args:
        data: Bytes to hash. Strings are hashed as UTF-8.

    Returns:
        Unsigned 64-bit hash value.
    """
    if isinstance(data, str):
        data = data.encode("utf-8", errors="surrogatepass")
    result = FNV64_OFFSET_BASIS
    for byte in data:
        result ^= byte
        result = (result * FNV64_PRIME) & _MASK64
    return result


def _is_volatile(char: str, filter_hex: bool) -> bool:
    if "0" <= char <= "9":
        return True
    if filter_hex and char in _HEX_LETTERS:
        return True
    return char in ".-" or ord(char) < 33


def fingerprint_message(level: int, message: str) -> tuple[int, int]:
    """Compute the grouping key of a message.

    The essence is the level followed by the message with digits, dots,
    dashes, control characters and (for messages longer than one character)
    hex letters removed, capped at ESSENCE_LIMIT characters.

    Args:
        level: Severity of the event; part of the key.
        message: The log message.

    Returns:
        Tuple of (fingerprint, cut) where cut is the message index just past
        the character that filled the essence, or len(message) when the whole
        message was scanned.
    """
    filter_hex = len(message) > 1
    essence = [str(level)]
    size = len(essence[0])
    cut = len(message)
    for index, char in enumerate(message):
        if _is_volatile(char, filter_hex):
            continue
        essence.append(char)
        size += 1
        if size >= ESSENCE_LIMIT:
            cut = index + 1
            break
    return fnv1a_64("".join(essence)), cut


def truncate(message: str, cut: int) -> str:
    """Cut message at index, marking the loss with an ellipsis."""
    if cut < len(message):
        return message[:cut] + ELLIPSIS
    return message
