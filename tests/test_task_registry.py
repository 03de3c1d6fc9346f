from __future__ import annotations

import asyncio

import pytest

from platform_io.task_registry import PENDING_DEPENDENCY, DependencyRetry, RetryPolicy, SingletonTaskRegistry
from services.game_sessions import TimerBag


def test_retry_delay_doubles_up_to_cap():
    policy = RetryPolicy(initial_delay=5, max_delay=30, max_attempts=4)
    assert [policy.delay_for(n) for n in range(1, 6)] == [5.0, 10.0, 20.0, 30.0, 30.0]


@pytest.mark.asyncio
async def test_dependency_retry_waits_for_ready(clock):
    ready = {"value": False}
    calls = []

    async def on_ready() -> None:
        calls.append("ready")

    bag = TimerBag(clock)
    retry = DependencyRetry(RetryPolicy(initial_delay=5, max_delay=120, max_attempts=3), bag, is_ready=lambda: ready["value"], on_ready=on_ready)

    await retry.run()
    assert retry.state == PENDING_DEPENDENCY
    assert clock.pending == 1

    await clock.advance(5)
    assert retry.attempts == 2
    assert clock.pending == 1

    ready["value"] = True
    await clock.advance(10)
    assert calls == ["ready"]
    assert retry.state == "done"
    assert clock.pending == 0

    await retry.run()
    assert calls == ["ready"]


@pytest.mark.asyncio
async def test_dependency_retry_gives_up(clock):
    gave_up = []
    bag = TimerBag(clock)
    retry = DependencyRetry(
        RetryPolicy(initial_delay=1, max_delay=1, max_attempts=2),
        bag,
        is_ready=lambda: False,
        on_ready=lambda: None,
        on_give_up=lambda: gave_up.append(True),
    )

    await retry.run()
    await clock.advance(10)

    assert retry.state == "gave_up"
    assert gave_up == [True]
    assert clock.pending == 0


@pytest.mark.asyncio
async def test_dependency_retry_cancel_drops_pending_timer(clock):
    bag = TimerBag(clock)
    retry = DependencyRetry(RetryPolicy(), bag, is_ready=lambda: False, on_ready=lambda: None)
    await retry.run()

    retry.cancel()

    assert not retry.pending
    assert clock.pending == 0


@pytest.mark.asyncio
async def test_singleton_task_registry_starts_once():
    started = []
    gate = asyncio.Event()

    async def worker() -> None:
        started.append(True)
        await gate.wait()

    registry = SingletonTaskRegistry()
    first = registry.start_once("worker", worker)
    second = registry.start_once("worker", worker)
    await asyncio.sleep(0)

    assert first is second
    assert started == [True]

    await registry.cancel_all()
    assert first.cancelled()
