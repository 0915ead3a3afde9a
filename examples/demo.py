"""Example daemon sending aggregated log alerts to a Telegram chat.

Run with:
    TGM_API_TOKEN=<bot token> TGM_CHAT_ID=<chat id> python examples/demo.py

The script logs random messages at random levels for a few seconds. The
alerts arrive every two seconds, with repeating messages collapsed into
counted samples.
"""

import logging
import os
import random
import sys
import threading
from pathlib import Path

import logalerts
from logalerts.adapters.logging import AlertHandler

TEST_MESSAGES = [
    "Payment gateway timed out after 30s for order 8841",
    'Config key "cache.ttl" is deprecated, use "cache.expire" instead',
    "Retrying job 17 (attempt 3 of 5)",
    "Disk usage on /var is 91%",
    "Worker pool exhausted: 16/16 busy",
    "Traceback-like output:\n  File main.py, line 3\nZeroDivisionError",
    "Unexpected reply from upstream:\n- status: 502\n- body: <html>",
    b"non-utf8 characters: \xff\xff".decode("utf-8", errors="surrogateescape"),
]

MARKS = {
    logging.DEBUG: ("🔧", "debug message"),
    logging.INFO: ("🟢", "info message"),
    logging.WARNING: ("🟡", "warning"),
    logging.ERROR: ("🔴", "error"),
    logging.CRITICAL: ("💥", "critical message"),
}


def intro(level: int, count: int) -> str:
    """Render the first line of a sample with a level mark."""
    mark, text = MARKS.get(level, ("", "message"))
    suffix = "s like" if count > 1 else ""
    return f"{mark} _*{count}* {text}{suffix}:_\n"


def log_message(logger: logging.Logger, level: int, message: str) -> None:
    # one call site per level, so each level gets its own samples
    if level == logging.INFO:
        logger.info(message)
    elif level == logging.WARNING:
        logger.warning(message)
    elif level == logging.ERROR:
        logger.error(message)
    else:
        logger.log(level, message)


def main() -> int:
    api_token = os.environ.get("TGM_API_TOKEN", "")
    chat_id = int(os.environ.get("TGM_CHAT_ID", "0") or 0)
    if not api_token or chat_id == 0:
        print("set TGM_API_TOKEN and TGM_CHAT_ID environment variables to make it work")
        return 1

    logging.basicConfig(
        level=logging.DEBUG,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    logger = logging.getLogger("demo")

    src_root = str(Path(__file__).resolve().parent) + os.sep
    worker = logalerts.start(src_root, intro, logging.getLogger("demo.alerts").error)
    worker.set_caption("test daemon")
    worker.set_destination(api_token, chat_id)
    worker.set_period(2)
    worker.set_timezone("MSK", 3 * 3600)
    logging.getLogger().addHandler(AlertHandler(worker))

    logger.info("start")
    worker.force_flush()

    done = threading.Event()
    timer = threading.Timer(3.0, done.set)
    timer.start()
    levels = [logging.INFO, logging.WARNING, logging.ERROR, logging.CRITICAL]
    try:
        while not done.wait(0.05):
            i = random.randrange(len(TEST_MESSAGES))
            log_message(logger, levels[i % len(levels)], TEST_MESSAGES[i])
    except KeyboardInterrupt:
        timer.cancel()
    finally:
        logger.error("stop")
        worker.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
