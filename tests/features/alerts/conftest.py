"""BDD step definitions for aggregated log alert features."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

import pytest
from pytest_bdd import given, parsers, then, when

from logalerts.adapters.senders.in_memory import InMemorySender
from logalerts.core.encoding import escape_markdown
from logalerts.worker import Worker, WorkerStoppedError

LEVELS = {"warning": logging.WARNING, "error": logging.ERROR}


@dataclass
class AlertScenarioContext:
    """State shared between the steps of one scenario."""

    sender: InMemorySender
    worker: Worker | None = None
    pushed: list[str] = field(default_factory=list)

    @property
    def running_worker(self) -> Worker:
        assert self.worker is not None, "no worker was started"
        return self.worker


@pytest.fixture
def ctx(sender: InMemorySender) -> AlertScenarioContext:
    """Fresh scenario context for each test."""
    return AlertScenarioContext(sender=sender)


@given("a running worker")
def step_running_worker(
    ctx: AlertScenarioContext, make_worker: Callable[..., Worker]
) -> None:
    ctx.worker = make_worker()


@given(parsers.parse('a running worker with caption "{caption}"'))
def step_running_worker_with_caption(
    ctx: AlertScenarioContext, make_worker: Callable[..., Worker], caption: str
) -> None:
    ctx.worker = make_worker()
    ctx.worker.set_caption(caption)


@when(parsers.parse('the {level:w} "{message}" is pushed'))
def step_push(ctx: AlertScenarioContext, level: str, message: str) -> None:
    ctx.running_worker.push_message(LEVELS[level], 0, message)
    ctx.pushed.append(message)


@when("the worker is flushed")
def step_flush(ctx: AlertScenarioContext, wait_until: Callable[..., bool]) -> None:
    before = len(ctx.sender.deliveries)
    ctx.running_worker.force_flush()
    if ctx.pushed:
        assert wait_until(lambda: len(ctx.sender.deliveries) > before)


@when("the worker is stopped")
def step_stop(ctx: AlertScenarioContext) -> None:
    ctx.running_worker.stop()


@then(parsers.parse("{count:d} delivery is made"))
@then(parsers.parse("{count:d} deliveries are made"))
def step_delivery_count(ctx: AlertScenarioContext, count: int) -> None:
    assert len(ctx.sender.deliveries) == count


@then(parsers.parse('the delivery reports {count:d} messages like "{message}"'))
def step_reports_count(ctx: AlertScenarioContext, count: int, message: str) -> None:
    payload = "".join(ctx.sender.payloads)
    assert f"_*{count}* messages like:_" in payload
    assert f"`{escape_markdown(message)}`" in payload


@then(parsers.parse('"{first}" appears before "{second}"'))
def step_order(ctx: AlertScenarioContext, first: str, second: str) -> None:
    payload = "".join(ctx.sender.payloads)
    assert payload.index(escape_markdown(first)) < payload.index(
        escape_markdown(second)
    )


@then(parsers.parse('the first payload opens with the caption "{caption}"'))
def step_caption(ctx: AlertScenarioContext, caption: str) -> None:
    assert ctx.sender.payloads[0].startswith(f"*{escape_markdown(caption)}*\n")


@then(parsers.parse('pushing the error "{message}" fails'))
def step_push_fails(ctx: AlertScenarioContext, message: str) -> None:
    with pytest.raises(WorkerStoppedError):
        ctx.running_worker.push_message(logging.ERROR, 0, message)
