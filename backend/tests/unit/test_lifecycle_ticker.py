from __future__ import annotations

import asyncio

import pytest

from engagement.domain.notifications.dispatcher import DispatchResult
from engagement.domain.sessions.lifecycle import AdvanceResult
from engagement.workers.ticker import LifecycleTicker


class _StubAdvancer:
    def __init__(self, result: AdvanceResult | None = None, *, error: Exception | None = None) -> None:
        self.result = result or AdvanceResult()
        self.error = error
        self.calls = 0

    async def advance(self, now=None):
        self.calls += 1
        if self.error:
            raise self.error
        return self.result


class _StubDispatcher:
    def __init__(self, *, hang: bool = False) -> None:
        self.calls = 0
        self.hang = hang

    async def dispatch(self, now=None):
        self.calls += 1
        if self.hang:
            await asyncio.sleep(10)
        return DispatchResult()


class _StubTrigger:
    def __init__(self, *, reject: set[int] | None = None, explode: set[int] | None = None) -> None:
        self.seen: list[int] = []
        self.reject = reject or set()
        self.explode = explode or set()

    async def trigger(self, session_id: int) -> bool:
        self.seen.append(session_id)
        if session_id in self.explode:
            raise RuntimeError("trigger failed")
        return session_id not in self.reject


class _StubBacklog:
    def __init__(self, ids: list[int] | None = None) -> None:
        self.ids = ids or []

    async def list_unprocessed_completed(self, now, limit, after_id=0):
        return sorted(i for i in self.ids if i > after_id)[:limit]


def _ticker(advancer, dispatcher, trigger, backlog, **kwargs) -> LifecycleTicker:
    return LifecycleTicker(advancer, dispatcher, trigger, backlog, interval=0.01, **kwargs)


@pytest.mark.asyncio
async def test_completed_sessions_and_backlog_are_handed_off(now):
    advancer = _StubAdvancer(AdvanceResult(started=[5], completed=[1, 2]))
    trigger = _StubTrigger(reject={7})
    ticker = _ticker(advancer, _StubDispatcher(), trigger, _StubBacklog([2, 7]))

    report = await ticker.tick(now)

    assert report.ok
    assert trigger.seen == [1, 2, 7]
    assert report.handed_off == [1, 2]


@pytest.mark.asyncio
async def test_failed_step_does_not_abort_the_tick(now):
    advancer = _StubAdvancer(error=RuntimeError("db down"))
    dispatcher = _StubDispatcher()
    trigger = _StubTrigger(explode={3})
    ticker = _ticker(advancer, dispatcher, trigger, _StubBacklog([3, 4]))

    report = await ticker.tick(now)

    assert report.failed_steps == ["advance"]
    assert dispatcher.calls == 1
    assert trigger.seen == [3, 4]
    assert report.handed_off == [4]


@pytest.mark.asyncio
async def test_step_timeout_is_a_step_failure(now):
    dispatcher = _StubDispatcher(hang=True)
    trigger = _StubTrigger()
    ticker = _ticker(_StubAdvancer(AdvanceResult(completed=[9])), dispatcher, trigger, _StubBacklog(), step_timeout=0.05)

    report = await ticker.tick(now)

    assert report.failed_steps == ["dispatch"]
    assert trigger.seen == [9]


@pytest.mark.asyncio
async def test_run_forever_runs_ticks_sequentially_until_stopped():
    advancer = _StubAdvancer()
    ticker = _ticker(advancer, _StubDispatcher(), _StubTrigger(), _StubBacklog())

    task = asyncio.create_task(ticker.run_forever())
    await asyncio.sleep(0.05)
    ticker.stop()
    await asyncio.wait_for(task, timeout=1)

    assert advancer.calls >= 2


@pytest.mark.asyncio
async def test_backlog_rotates_past_sessions_that_keep_failing(now):
    stuck = {1, 2}
    trigger = _StubTrigger(reject=stuck)
    ticker = _ticker(_StubAdvancer(), _StubDispatcher(), trigger, _StubBacklog([1, 2, 3]), backlog_batch=2)

    first = await ticker.tick(now)
    second = await ticker.tick(now)
    third = await ticker.tick(now)

    assert first.handed_off == []
    assert second.handed_off == [3]
    assert trigger.seen == [1, 2, 3, 1, 2]
    assert third.handed_off == []
