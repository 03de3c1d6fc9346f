from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable


log = logging.getLogger("spectreon.runtime")

ReadyCheck = Callable[[], bool]
AsyncAction = Callable[[], Awaitable[None]]


class SingletonTaskRegistry:
    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task] = {}

    def start_once(self, name: str, factory: Callable[[], Awaitable[None]]) -> asyncio.Task:
        task = self._tasks.get(name)
        if task and not task.done():
            return task
        task = asyncio.create_task(factory(), name=name)
        self._tasks[name] = task
        return task

    def get(self, name: str) -> asyncio.Task | None:
        return self._tasks.get(name)

    async def cancel_all(self) -> None:
        tasks = [task for task in self._tasks.values() if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    initial_delay: float = 5.0
    max_delay: float = 120.0
    max_attempts: int = 10

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based), doubling up to ``max_delay``."""
        exponent = max(0, int(attempt) - 1)
        return float(min(self.max_delay, self.initial_delay * (2 ** exponent)))


PENDING_DEPENDENCY = "pending_dependency"


class DependencyRetry:
    """Runs ``on_ready`` once ``is_ready()`` holds, retrying through a timer bag.

    At most one retry timer is pending at any time. After ``max_attempts``
    failed checks ``on_give_up`` runs instead and no further timers are armed.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        timers: Any,
        *,
        is_ready: ReadyCheck,
        on_ready: AsyncAction,
        on_give_up: AsyncAction | None = None,
        name: str = "dependency",
    ) -> None:
        self.policy = policy
        self.timers = timers
        self.is_ready = is_ready
        self.on_ready = on_ready
        self.on_give_up = on_give_up
        self.name = name
        self.attempts = 0
        self.state = "idle"
        self._handle: Any = None

    @property
    def pending(self) -> bool:
        return self.state == PENDING_DEPENDENCY

    async def run(self) -> None:
        self._handle = None
        if self.state in {"done", "gave_up"}:
            return
        if self.is_ready():
            self.state = "done"
            await self.on_ready()
            return

        self.attempts += 1
        if self.attempts > self.policy.max_attempts:
            self.state = "gave_up"
            log.warning("%s: dependency not ready after %s attempts; giving up", self.name, self.policy.max_attempts)
            if self.on_give_up is not None:
                result = self.on_give_up()
                if inspect.isawaitable(result):
                    await result
            return

        delay = self.policy.delay_for(self.attempts)
        self.state = PENDING_DEPENDENCY
        log.info("%s: dependency not ready; retry %s in %.0fs", self.name, self.attempts, delay)
        self._handle = self.timers.set_timeout(self.run, delay)

    def cancel(self) -> None:
        if self._handle is not None:
            self.timers.cancel(self._handle)
            self._handle = None
        if self.state == PENDING_DEPENDENCY:
            self.state = "idle"
