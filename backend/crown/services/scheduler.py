"""Timer ownership for the coordination services.

Each component owns one ``Scheduler``; every interval or one-shot timer it
starts is registered under a key and cancelled through that scheduler, so a
stop/unmount is a single ``cancel_all()``.
"""
from __future__ import annotations
import asyncio
import inspect
import time
from typing import Any, Awaitable, Callable
import structlog

log = structlog.get_logger(__name__)

Tick = Callable[[], Awaitable[Any] | Any]


async def _invoke(fn: Tick) -> Any:
    result = fn()
    if inspect.isawaitable(result):
        result = await result
    return result


class Scheduler:
    def __init__(self, owner: str = "scheduler") -> None:
        self.owner = owner
        self._tasks: dict[str, asyncio.Task] = {}

    def every(self, key: str, interval: float, fn: Tick, *, run_immediately: bool = False) -> asyncio.Task:
        """Run ``fn`` every ``interval`` seconds until cancelled. Replaces any timer under ``key``."""
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self.cancel(key)

        async def _loop() -> None:
            me = asyncio.current_task()
            if run_immediately:
                await self._safe(key, fn)
            # a tick that cancels its own timer ends the loop here
            while self._tasks.get(key) is me:
                await asyncio.sleep(interval)
                await self._safe(key, fn)

        return self._start(key, _loop())

    def after(self, key: str, delay: float, fn: Tick) -> asyncio.Task:
        """Run ``fn`` once after ``delay`` seconds unless cancelled first."""
        self.cancel(key)

        async def _once() -> None:
            me = asyncio.current_task()
            try:
                await asyncio.sleep(delay)
                await self._safe(key, fn)
            finally:
                # the key stays owned while fn runs
                if self._tasks.get(key) is me:
                    del self._tasks[key]

        return self._start(key, _once())

    def _start(self, key: str, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=f"{self.owner}:{key}")
        self._tasks[key] = task
        return task

    async def _safe(self, key: str, fn: Tick) -> None:
        # a failing tick is logged, the interval keeps running
        try:
            await _invoke(fn)
        except asyncio.CancelledError:
            raise
        except Exception:
            log.exception("scheduler.tick_failed", owner=self.owner, key=key)

    def is_active(self, key: str) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    @property
    def keys(self) -> list[str]:
        return [k for k in self._tasks if self.is_active(k)]

    def cancel(self, key: str) -> bool:
        task = self._tasks.pop(key, None)
        if task is None or task.done():
            return False
        if task is not asyncio.current_task():
            task.cancel()
        return True

    async def cancel_all(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        current = asyncio.current_task()
        for t in tasks:
            if t is not current:
                t.cancel()
        for t in tasks:
            if t is current:
                continue
            try:
                await t
            except asyncio.CancelledError:
                pass
            except Exception:
                log.exception("scheduler.task_failed", owner=self.owner, task=t.get_name())


class Debouncer:
    """Lets a call through at most once per ``window`` seconds unless forced."""

    def __init__(self, window: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.window = window
        self._clock = clock
        self._last: float | None = None

    def ready(self, force: bool = False) -> bool:
        now = self._clock()
        if force or self._last is None or now - self._last >= self.window:
            self._last = now
            return True
        return False

    def reset(self) -> None:
        self._last = None


async def poll_until(
    check: Callable[[], Awaitable[bool] | bool],
    *,
    interval: float,
    timeout: float | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> bool:
    """Poll ``check`` every ``interval`` seconds. True once it holds, False on timeout."""
    deadline = None if timeout is None else clock() + timeout
    while True:
        if await _invoke(check):
            return True
        if deadline is not None and clock() >= deadline:
            return False
        await asyncio.sleep(interval)
