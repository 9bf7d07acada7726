from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from engagement.domain.sessions.lifecycle import LifecycleAdvancer
from engagement.domain.sessions.models import Session, SessionStatus
from engagement.domain.sessions.registry import Transition


class _InMemoryTransitions:
    """Applies conditional updates the way the SQL statement does."""

    def __init__(self, sessions: list[Session]) -> None:
        self.sessions = {session.id: session for session in sessions}
        self.history: dict[int, list[SessionStatus]] = {sid: [s.status] for sid, s in self.sessions.items()}

    async def apply_transition(self, transition: Transition, now: datetime) -> list[int]:
        moved = []
        for session in self.sessions.values():
            if session.status is transition.source and getattr(session, transition.column) <= now:
                session.status = transition.target
                self.history[session.id].append(transition.target)
                moved.append(session.id)
        return moved


@pytest.mark.asyncio
async def test_recruiting_session_starts_once_start_time_passes(make_session, now):
    session = make_session(1, start=now - timedelta(minutes=1))
    store = _InMemoryTransitions([session])

    result = await LifecycleAdvancer(store).advance(now)

    assert result.started == [1]
    assert result.completed == []
    assert session.status is SessionStatus.IN_PROGRESS


@pytest.mark.asyncio
async def test_future_session_is_untouched(make_session, now):
    session = make_session(1, start=now + timedelta(minutes=5))
    store = _InMemoryTransitions([session])

    result = await LifecycleAdvancer(store).advance(now)

    assert result.started == [] and result.completed == []
    assert session.status is SessionStatus.RECRUITING


@pytest.mark.asyncio
async def test_overdue_session_passes_through_in_progress(make_session, now):
    # Both start and end are in the past: the first pass only starts it.
    session = make_session(1, start=now - timedelta(hours=3), end=now - timedelta(hours=1))
    store = _InMemoryTransitions([session])
    advancer = LifecycleAdvancer(store)

    first = await advancer.advance(now)
    second = await advancer.advance(now)

    assert first.started == [1] and first.completed == []
    assert second.completed == [1] and second.started == []
    assert store.history[1] == [SessionStatus.RECRUITING, SessionStatus.IN_PROGRESS, SessionStatus.COMPLETED]


@pytest.mark.asyncio
async def test_repeated_passes_are_noops_and_never_move_backward(make_session, now):
    sessions = [
        make_session(1, start=now - timedelta(hours=3), end=now - timedelta(hours=1), status=SessionStatus.COMPLETED),
        make_session(2, start=now - timedelta(minutes=30), status=SessionStatus.IN_PROGRESS),
    ]
    store = _InMemoryTransitions(sessions)
    advancer = LifecycleAdvancer(store)

    for _ in range(3):
        result = await advancer.advance(now)
        assert result.started == [] and result.completed == []

    assert store.history[1] == [SessionStatus.COMPLETED]
    assert store.history[2] == [SessionStatus.IN_PROGRESS]


def test_backward_rule_is_rejected():
    backward = Transition(SessionStatus.COMPLETED, SessionStatus.RECRUITING, "start_time")
    with pytest.raises(ValueError):
        LifecycleAdvancer(_InMemoryTransitions([]), transitions=(backward,))
