"""Python logging handler adapter for logalerts.

This adapter bridges Python's standard library logging module to a running
Worker, so every log record at or above the handler level ends up in the
aggregated alerts.
"""

import logging
import os
import sys
import traceback
from traceback import FrameSummary
from types import FrameType

from logalerts.core.fingerprint import fnv1a_64
from logalerts.worker import Worker

# Loggers of this package; their records must not feed the engine back
_OWN_LOGGER_PREFIX = "logalerts"

DEFAULT_STACK_DEPTH = 3

_INTERNAL_FILES = frozenset(
    {
        os.path.normcase(logging.Handler.handle.__code__.co_filename),
        os.path.normcase(__file__),
    }
)


def _is_internal(frame: FrameType) -> bool:
    return os.path.normcase(frame.f_code.co_filename) in _INTERNAL_FILES


def _caller_stack(depth: int) -> list[FrameSummary]:
    """Return up to depth frames of the logging caller, innermost first."""
    frame: FrameType | None = sys._getframe(1)
    while frame is not None and _is_internal(frame):
        frame = frame.f_back
    if frame is None:
        return []
    return list(reversed(traceback.extract_stack(frame, limit=depth)))


def call_site_fingerprint(record: logging.LogRecord) -> int:
    """Key grouping all records emitted by one logging call at one level."""
    return fnv1a_64(f"{record.pathname}:{record.lineno}:{record.levelno}")


class AlertHandler(logging.Handler):
    """Logging handler that pushes log records into a Worker.

    INFO records are grouped by message likeness. WARNING and above carry
    the caller's stack and are grouped by call site.

    Example:
        ```python
        import logalerts
        from logalerts.adapters.logging import AlertHandler

        worker = logalerts.start(src_root="/srv/app/")
        logging.getLogger().addHandler(AlertHandler(worker))
        ```
    """

    def __init__(
        self,
        worker: Worker,
        level: int = logging.INFO,
        stack_depth: int = DEFAULT_STACK_DEPTH,
    ) -> None:
        """Initialize the handler with a running worker.

        Args:
            worker: Worker receiving the records.
            level: Minimum record level. Defaults to INFO.
            stack_depth: Number of caller frames captured for WARNING and
                above. 0 disables stack capture.
        """
        super().__init__(level)
        self._worker = worker
        self._stack_depth = stack_depth

    def emit(self, record: logging.LogRecord) -> None:
        """Emit a log record to the worker.

        Args:
            record: The log record to emit.
        """
        if record.name.split(".", 1)[0] == _OWN_LOGGER_PREFIX:
            return
        # a stopped worker has nowhere to put the record
        if not self._worker.running:
            return

        try:
            message = record.getMessage()
            if record.exc_info:
                message = f"{message}\n{self._exception_text(record)}"

            if record.levelno >= logging.WARNING and self._stack_depth > 0:
                self._worker.push_message(
                    record.levelno,
                    call_site_fingerprint(record),
                    message,
                    _caller_stack(self._stack_depth),
                )
            else:
                self._worker.push_message(record.levelno, 0, message)
        except Exception:
            self.handleError(record)

    def _exception_text(self, record: logging.LogRecord) -> str:
        if not record.exc_text:
            formatter = self.formatter or logging.Formatter()
            record.exc_text = formatter.formatException(record.exc_info)
        return record.exc_text
