import asyncio
import pytest
from crown.services.scheduler import Debouncer, Scheduler, poll_until


def test_debouncer_window():
    now = [100.0]
    d = Debouncer(5, clock=lambda: now[0])
    assert d.ready()
    now[0] += 4.9
    assert not d.ready()
    assert d.ready(force=True)
    now[0] += 5
    assert d.ready()


@pytest.mark.asyncio
async def test_every_runs_until_cancelled():
    ticks = []
    s = Scheduler("test")
    s.every("tick", 0.01, lambda: ticks.append(1), run_immediately=True)
    await asyncio.sleep(0.05)
    assert s.is_active("tick")
    await s.cancel_all()
    seen = len(ticks)
    assert seen >= 2
    await asyncio.sleep(0.03)
    assert len(ticks) == seen
    assert s.keys == []


@pytest.mark.asyncio
async def test_failing_tick_keeps_interval():
    calls = []

    async def flaky():
        calls.append(1)
        raise RuntimeError("boom")

    s = Scheduler("test")
    s.every("flaky", 0.01, flaky, run_immediately=True)
    await asyncio.sleep(0.05)
    await s.cancel_all()
    assert len(calls) >= 2


@pytest.mark.asyncio
async def test_tick_can_cancel_its_own_timer():
    s = Scheduler("test")
    calls = []

    def once():
        calls.append(1)
        s.cancel("self")

    s.every("self", 0.01, once, run_immediately=True)
    await asyncio.sleep(0.05)
    assert calls == [1]
    assert not s.is_active("self")


@pytest.mark.asyncio
async def test_after_can_be_cancelled():
    fired = []
    s = Scheduler("test")
    s.after("later", 0.02, lambda: fired.append(1))
    assert s.cancel("later")
    await asyncio.sleep(0.04)
    assert fired == []


@pytest.mark.asyncio
async def test_poll_until_true_and_timeout():
    state = {"n": 0}

    def check():
        state["n"] += 1
        return state["n"] >= 3

    assert await poll_until(check, interval=0.001) is True
    assert await poll_until(lambda: False, interval=0.005, timeout=0.02) is False


@pytest.mark.asyncio
async def test_after_stays_owned_while_running():
    started, finished = asyncio.Event(), []
    s = Scheduler("test")

    async def slow():
        started.set()
        await asyncio.sleep(10)
        finished.append(1)

    task = s.after("slow", 0, slow)
    await started.wait()
    assert s.keys == ["slow"]
    await s.cancel_all()
    assert task.done()
    assert finished == []

    s.after("quick", 0, lambda: None)
    await asyncio.sleep(0.01)
    assert s.keys == []
