"""Background worker that aggregates log events and flushes alerts.

All engine state (batches and configuration) is owned by one asyncio loop
running on a dedicated thread. Public methods never touch that state: they
hand events and commands over through two bounded mailboxes and the loop
applies them one at a time.

Example:
    ```python
    import logalerts

    worker = logalerts.start(src_root="/srv/app/")
    worker.set_caption("billing daemon")
    worker.set_destination(api_token, chat_id)
    worker.push_message(logging.ERROR, 0, "payment 4411 declined")
    ...
    worker.stop()
    ```
"""

import asyncio
import enum
import logging
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from datetime import timedelta, timezone, tzinfo
from traceback import FrameSummary
from types import TracebackType
from typing import Any, assert_never

from logalerts.adapters.senders.telegram import ErrorHandler, TelegramSender
from logalerts.core.batch import Batch
from logalerts.core.encoding.markdown import render_batch
from logalerts.core.merger import Merger
from logalerts.core.models import (
    Destination,
    IntroFormatter,
    LogEvent,
    RenderSettings,
)
from logalerts.core.ports import SenderPort

logger = logging.getLogger(__name__)

DEFAULT_PERIOD = 300.0
EVENT_CAPACITY = 20
COMMAND_CAPACITY = 10


class WorkerStoppedError(RuntimeError):
    """Raised when a call reaches a worker that is stopping or stopped."""


class WorkerState(enum.Enum):
    """Lifecycle of a worker."""

    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


@dataclass(frozen=True)
class SetCaption:
    caption: str


@dataclass(frozen=True)
class SetDestination:
    destination: Destination


@dataclass(frozen=True)
class SetTimezone:
    timezone: tzinfo


@dataclass(frozen=True)
class SetPeriod:
    seconds: float


@dataclass(frozen=True)
class Uncork:
    pass


Command = SetCaption | SetDestination | SetTimezone | SetPeriod | Uncork


class _Mailbox:
    """Bounded handoff of items from caller threads into the worker loop.

    Callers on foreign threads take a slot before posting and block while
    none is free; the loop gives the slot back when it takes the item.
    Items posted from the loop thread itself skip the slots so they can
    never block the loop.
    """

    def __init__(self, capacity: int) -> None:
        self.slots = threading.Semaphore(capacity)
        self._queue: asyncio.Queue[tuple[Any, bool]] = asyncio.Queue()

    def post(self, item: Any, bounded: bool) -> None:
        self._queue.put_nowait((item, bounded))

    def _release(self, entry: tuple[Any, bool]) -> Any:
        item, bounded = entry
        if bounded:
            self.slots.release()
        return item

    async def get(self) -> Any:
        return self._release(await self._queue.get())

    def drain(self) -> list[Any]:
        items = []
        while not self._queue.empty():
            items.append(self._release(self._queue.get_nowait()))
        return items

    def empty(self) -> bool:
        return self._queue.empty()


class Worker:
    """Live control handle of the aggregation engine.

    Args:
        src_root: Path prefix of frames shown as callers; the prefix itself
            is cut from the rendered paths.
        intro: Callback rendering the intro line of a sample from
            (level, count). Defaults to "N messages like:".
        error_handler: Receives diagnostics of failed deliveries. Defaults
            to logging them on this module's logger.
        sender: Delivery adapter. Defaults to a TelegramSender.
        period: Flush period in seconds.
        clock: Source of unix timestamps for incoming events.
        event_capacity: Events that may wait for the loop before producers
            block.
        command_capacity: Commands that may wait for the loop before callers
            block.
    """

    def __init__(
        self,
        src_root: str = "",
        intro: IntroFormatter | None = None,
        error_handler: ErrorHandler | None = None,
        *,
        sender: SenderPort | None = None,
        period: float = DEFAULT_PERIOD,
        clock: Callable[[], float] = time.time,
        event_capacity: int = EVENT_CAPACITY,
        command_capacity: int = COMMAND_CAPACITY,
    ) -> None:
        _check_period(period)
        self._error_handler = error_handler
        self._sender = sender if sender is not None else TelegramSender(self._report)
        self._settings = RenderSettings(src_root=src_root, intro=intro)
        self._destination = Destination()
        self._period = period
        self._merger = Merger(clock)
        self._event_capacity = event_capacity
        self._command_capacity = command_capacity

        self._state = WorkerState.RUNNING
        self._state_lock = threading.Lock()
        self._ready = threading.Event()
        self._thread = threading.Thread(
            target=self._thread_main, name="logalerts-worker", daemon=True
        )
        self._loop: asyncio.AbstractEventLoop | None = None
        self._events: _Mailbox | None = None
        self._commands: _Mailbox | None = None
        self._stop_requested: asyncio.Event | None = None
        self._deliveries: set[asyncio.Task[None]] = set()

    # --- Lifecycle ---

    def start(self) -> "Worker":
        """Start the worker thread and wait until the loop accepts input."""
        self._thread.start()
        self._ready.wait()
        if self._loop is None:
            raise RuntimeError("worker loop failed to start")
        logger.debug("worker started, period %.1f sec", self._period)
        return self

    def stop(self) -> None:
        """Flush everything still pending and stop the worker.

        Blocks until the final flush has been delivered (or has failed) and
        the worker thread has exited. Calling it again is a no-op.
        """
        if threading.current_thread() is self._thread:
            raise RuntimeError("stop() cannot be called from the worker thread")
        with self._state_lock:
            first = self._state is WorkerState.RUNNING
            if first:
                self._state = WorkerState.STOPPING
        if first and self._loop is not None and self._stop_requested is not None:
            self._loop.call_soon_threadsafe(self._stop_requested.set)
        if self._thread.is_alive():
            self._thread.join()
        self._state = WorkerState.STOPPED
        if first:
            # wake callers still waiting for a slot; each one passes it on
            for mailbox in (self._events, self._commands):
                if mailbox is not None:
                    mailbox.slots.release()

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def running(self) -> bool:
        return self._state is WorkerState.RUNNING

    def __enter__(self) -> "Worker":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.stop()

    # --- Producer interface ---

    def push_message(
        self,
        level: int,
        fingerprint: int,
        message: str | bytes,
        call_stack: Sequence[FrameSummary] = (),
    ) -> None:
        """Queue a log event for aggregation.

        Args:
            level: Event severity.
            fingerprint: Grouping key, or 0 to derive one from the message.
                A call-site derived key keeps samples apart even when their
                texts look alike.
            message: Log text. Bytes are decoded as UTF-8 and undecodable
                bytes are shown as hex escapes in the alert.
            call_stack: Caller frames, innermost first.
        """
        if isinstance(message, bytes):
            message = message.decode("utf-8", errors="surrogateescape")
        event = LogEvent(level, fingerprint, message, tuple(call_stack))
        self._submit(self._events, event)

    # --- Control interface ---

    def set_caption(self, caption: str) -> None:
        """Set the bold caption of alert messages (e.g. the daemon name)."""
        self._submit(self._commands, SetCaption(caption))

    def set_destination(self, api_token: str, chat_id: int) -> None:
        """Set the bot token and target chat. Chat id 0 disables delivery."""
        self._submit(self._commands, SetDestination(Destination(api_token, chat_id)))

    def set_timezone(self, name: str, offset_seconds: int) -> None:
        """Set the zone timestamps are rendered in and its UTC offset."""
        offset = timedelta(seconds=offset_seconds)
        tz = timezone(offset, name) if name else timezone(offset)
        self._submit(self._commands, SetTimezone(tz))

    def set_period(self, seconds: float) -> None:
        """Set the flush period. Pending samples are flushed right away."""
        _check_period(seconds)
        self._submit(self._commands, SetPeriod(seconds))

    def force_flush(self) -> None:
        """Flush pending samples without waiting for the timer."""
        self._submit(self._commands, Uncork())

    # --- Caller side ---

    def _submit(self, mailbox: _Mailbox | None, item: Any) -> None:
        if mailbox is None or self._loop is None:
            raise RuntimeError("worker has not been started")
        if self._state is not WorkerState.RUNNING:
            raise WorkerStoppedError("worker is not running")

        in_loop = threading.current_thread() is self._thread
        if in_loop:
            # the loop cannot wait for itself to free a slot
            mailbox.post(item, bounded=False)
            return

        mailbox.slots.acquire()
        with self._state_lock:
            if self._state is not WorkerState.RUNNING:
                mailbox.slots.release()
                raise WorkerStoppedError("worker stopped while the call was waiting")
            self._loop.call_soon_threadsafe(mailbox.post, item, True)

    def _report(self, text: str) -> None:
        if self._error_handler is None:
            logger.error(text)
            return
        self._error_handler(text)

    # --- Loop side ---

    def _thread_main(self) -> None:
        try:
            asyncio.run(self._run())
        finally:
            self._ready.set()

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        events = self._events = _Mailbox(self._event_capacity)
        commands = self._commands = _Mailbox(self._command_capacity)
        self._stop_requested = asyncio.Event()
        self._loop = loop
        self._ready.set()

        deadline = loop.time() + self._period
        next_event = loop.create_task(events.get())
        next_command = loop.create_task(commands.get())
        stop_wait = loop.create_task(self._stop_requested.wait())
        try:
            while not stop_wait.done():
                await asyncio.wait(
                    {next_event, next_command, stop_wait},
                    timeout=max(0.0, deadline - loop.time()),
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if next_event.done():
                    self._merger.push_message(next_event.result())
                    # events posted before a command must land before it
                    for event in events.drain():
                        self._merger.push_message(event)
                    next_event = loop.create_task(events.get())
                if next_command.done():
                    if self._apply(next_command.result()):
                        deadline = loop.time() + self._period
                    next_command = loop.create_task(commands.get())
                if loop.time() >= deadline:
                    self._flush()
                    deadline = loop.time() + self._period
        finally:
            next_event.cancel()
            next_command.cancel()
            stop_wait.cancel()

        await self._shutdown(events, commands)

    def _apply(self, command: Command) -> bool:
        """Apply a command. Returns True if it flushed and the timer restarts."""
        match command:
            case SetCaption(caption=caption):
                self._settings = replace(self._settings, caption=caption)
            case SetDestination(destination=destination):
                self._destination = destination
            case SetTimezone(timezone=tz):
                self._settings = replace(self._settings, timezone=tz)
            case SetPeriod(seconds=seconds):
                self._period = seconds
                self._flush()
                return True
            case Uncork():
                self._flush()
                return True
            case _:
                assert_never(command)
        return False

    def _flush(self) -> None:
        batch = self._merger.take_finalized()
        if batch.is_empty():
            return
        logger.debug("flushing %d samples", len(batch))
        task = asyncio.get_running_loop().create_task(
            self._deliver(batch, self._settings, self._destination)
        )
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)

    async def _deliver(
        self, batch: Batch, settings: RenderSettings, destination: Destination
    ) -> None:
        try:
            payloads = render_batch(batch, settings)
            await self._sender.send(payloads, destination)
        except Exception as exc:
            self._report(f"alert delivery failed: {exc!r}")

    async def _drain(self, events: _Mailbox, commands: _Mailbox) -> None:
        """Apply everything callers managed to queue before the stop."""
        while True:
            for event in events.drain():
                self._merger.push_message(event)
            for command in commands.drain():
                self._apply(command)
            # let hand-overs already scheduled on the loop land
            await asyncio.sleep(0)
            if events.empty() and commands.empty():
                return

    async def _shutdown(self, events: _Mailbox, commands: _Mailbox) -> None:
        await self._drain(events, commands)
        batch = self._merger.take_finalized()
        if not batch.is_empty():
            logger.debug("final flush of %d samples", len(batch))
            await self._deliver(batch, self._settings, self._destination)
        if self._deliveries:
            await asyncio.gather(*self._deliveries)
        self._state = WorkerState.STOPPED
        logger.debug("worker stopped")


def _check_period(seconds: float) -> None:
    if seconds <= 0:
        raise ValueError(f"flush period must be positive, got {seconds}")


def start(
    src_root: str = "",
    intro: IntroFormatter | None = None,
    error_handler: ErrorHandler | None = None,
    **options: Any,
) -> Worker:
    """Create and start a worker.

    Args:
        src_root: Path prefix of frames shown as callers.
        intro: Callback rendering the intro line of a sample.
        error_handler: Receives diagnostics of failed deliveries.
        **options: Further Worker keyword arguments (sender, period, clock,
            event_capacity, command_capacity).

    Returns:
        The running worker.
    """
    return Worker(src_root, intro, error_handler, **options).start()
