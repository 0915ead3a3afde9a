"""Encoders turning batches into chat payloads."""

from logalerts.core.encoding.markdown import (
    MAX_MESSAGE_SIZE,
    escape_fixed,
    escape_markdown,
    render_batch,
)

__all__ = ["MAX_MESSAGE_SIZE", "escape_fixed", "escape_markdown", "render_batch"]
