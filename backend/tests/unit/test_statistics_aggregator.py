from __future__ import annotations

import copy
from contextlib import asynccontextmanager
from datetime import timedelta

import pytest

from engagement.domain.errors import SessionNotCompletedError, SessionNotFinishedError, SessionNotFoundError
from engagement.domain.sessions import registry
from engagement.domain.sessions.models import SessionStatus
from engagement.domain.statistics.repo import Attendance
from engagement.domain.statistics.service import ALREADY_PROCESSED, PROCESSED, StatisticsAggregator
from engagement.infra.mongo import SessionMetadata


class _State:
    def __init__(self) -> None:
        self.sessions = {}
        self.members: dict[int, set[int]] = {}
        self.processed: set[int] = set()
        self.side: dict[int, dict] = {}
        self.session_stats: dict[int, dict] = {}
        self.top_category: dict[int, int] = {}
        self.genres: dict[str, int] = {}
        self.user_genres: dict[tuple[int, int], int] = {}


class _Unit:
    def __init__(self, state: _State) -> None:
        self.state = state

    async def lock_session(self, session_id):
        return self.state.sessions.get(session_id)

    async def mark_processed(self, session_id):
        if session_id in self.state.processed:
            return False
        self.state.processed.add(session_id)
        return True

    async def list_member_ids(self, session):
        return sorted(self.state.members.get(session.id, set()) | {session.creator_id})

    async def ensure_rows(self, user_id):
        self.state.side.setdefault(
            user_id,
            {"count_created": 0, "longest_streak": 0, "favorite_weekday": None, "biggest_session": 0},
        )
        self.state.session_stats.setdefault(
            user_id,
            {
                "count_films": 0,
                "count_games": 0,
                "count_board_games": 0,
                "count_other": 0,
                "count_all": 0,
                "spent_minutes": 0,
            },
        )

    async def record_created(self, user_id, participants):
        side = self.state.side[user_id]
        side["count_created"] += 1
        side["biggest_session"] = max(side["biggest_session"], participants)

    async def record_attendance(self, user_id, minutes, session_type_id):
        stats = self.state.session_stats[user_id]
        stats["count_all"] += 1
        stats["spent_minutes"] += minutes
        stats[registry.category_column(session_type_id)] += 1

    async def record_genres(self, user_ids, genres):
        for name in sorted(set(genres)):
            genre_id = self.state.genres.setdefault(name, len(self.state.genres) + 1)
            for user_id in user_ids:
                key = (user_id, genre_id)
                self.state.user_genres[key] = self.state.user_genres.get(key, 0) + 1
        return len(set(genres))

    async def attendance_history(self, user_id):
        return [
            Attendance(s.start_time, s.session_type_id)
            for s in self.state.sessions.values()
            if s.status is SessionStatus.COMPLETED
            and (s.creator_id == user_id or user_id in self.state.members.get(s.id, set()))
        ]

    async def write_derived(self, user_id, *, streak, weekday, top_category):
        self.state.side[user_id]["longest_streak"] = streak
        self.state.side[user_id]["favorite_weekday"] = weekday
        if top_category is not None:
            self.state.top_category[user_id] = top_category


class _InMemoryStatsStore:
    """Rolls every change back when the unit of work raises."""

    def __init__(self) -> None:
        self.state = _State()

    @asynccontextmanager
    async def transaction(self):
        snapshot = copy.deepcopy(self.state)
        try:
            yield _Unit(self.state)
        except BaseException:
            self.state = snapshot
            raise


class _FakeMetadata:
    def __init__(self, docs=None, *, error: Exception | None = None) -> None:
        self.docs = docs or {}
        self.error = error

    async def get_many(self, session_ids):
        if self.error is not None:
            raise self.error
        return {sid: self.docs[sid] for sid in session_ids if sid in self.docs}


def _completed(make_session, now, session_id=10, **kwargs):
    kwargs.setdefault("start", now - timedelta(hours=3))
    kwargs.setdefault("end", now - timedelta(hours=1))
    return make_session(session_id, status=SessionStatus.COMPLETED, **kwargs)


@pytest.mark.asyncio
async def test_completed_session_updates_every_member(make_session, now):
    store = _InMemoryStatsStore()
    session = _completed(make_session, now, creator_id=1, current_users=3, session_type_id=3, duration_minutes=90)
    store.state.sessions[session.id] = session
    store.state.members[session.id] = {2, 3}
    metadata = _FakeMetadata({10: SessionMetadata(session_id=10, genres=["strategy", "coop"])})

    outcome = await StatisticsAggregator(store, metadata).process(10, now)

    state = store.state
    assert outcome == PROCESSED
    assert state.processed == {10}
    assert state.side[1]["count_created"] == 1
    assert state.side[1]["biggest_session"] == 3
    assert state.side[2]["count_created"] == 0
    for user_id in (1, 2, 3):
        stats = state.session_stats[user_id]
        assert stats["count_all"] == 1
        assert stats["count_board_games"] == 1
        assert stats["spent_minutes"] == 90
        assert state.side[user_id]["longest_streak"] == 1
        assert state.side[user_id]["favorite_weekday"] == session.start_time.isoweekday()
        assert state.top_category[user_id] == 3
    assert len(state.user_genres) == 6
    assert set(state.user_genres.values()) == {1}


@pytest.mark.asyncio
async def test_second_call_is_a_noop(make_session, now):
    store = _InMemoryStatsStore()
    store.state.sessions[10] = _completed(make_session, now, creator_id=1)
    aggregator = StatisticsAggregator(store, _FakeMetadata())

    first = await aggregator.process(10, now)
    snapshot = copy.deepcopy(store.state.__dict__)
    second = await aggregator.process(10, now)

    assert (first, second) == (PROCESSED, ALREADY_PROCESSED)
    assert store.state.__dict__ == snapshot
    assert store.state.session_stats[1]["count_all"] == 1


@pytest.mark.asyncio
async def test_spent_minutes_falls_back_to_time_range(make_session, now):
    store = _InMemoryStatsStore()
    store.state.sessions[10] = _completed(make_session, now, creator_id=1, duration_minutes=None, session_type_id=9)

    await StatisticsAggregator(store, _FakeMetadata()).process(10, now)

    stats = store.state.session_stats[1]
    assert stats["spent_minutes"] == 120
    assert stats["count_other"] == 1


@pytest.mark.asyncio
async def test_streak_is_recomputed_from_full_history(make_session, now):
    store = _InMemoryStatsStore()
    start = now - timedelta(days=3, hours=2)
    for offset, sid in enumerate((1, 2, 3)):
        day_start = start + timedelta(days=offset)
        store.state.sessions[sid] = _completed(
            make_session, now, session_id=sid, start=day_start, end=day_start + timedelta(hours=1), creator_id=1
        )
    aggregator = StatisticsAggregator(store, _FakeMetadata())

    for sid in (1, 2, 3):
        await aggregator.process(sid, now)

    assert store.state.side[1]["longest_streak"] == 3
    assert store.state.side[1]["count_created"] == 3


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status", "end_offset", "expected"),
    [
        (SessionStatus.IN_PROGRESS, -1, SessionNotCompletedError),
        (SessionStatus.COMPLETED, 1, SessionNotFinishedError),
    ],
)
async def test_invalid_sessions_raise_integrity_errors(make_session, now, status, end_offset, expected):
    store = _InMemoryStatsStore()
    store.state.sessions[10] = make_session(
        10, start=now - timedelta(hours=2), end=now + timedelta(hours=end_offset), status=status
    )

    with pytest.raises(expected):
        await StatisticsAggregator(store, _FakeMetadata()).process(10, now)

    assert store.state.processed == set()


@pytest.mark.asyncio
async def test_missing_session_raises_not_found(now):
    with pytest.raises(SessionNotFoundError):
        await StatisticsAggregator(_InMemoryStatsStore(), _FakeMetadata()).process(404, now)


@pytest.mark.asyncio
async def test_document_store_failure_rolls_back_marker(make_session, now):
    store = _InMemoryStatsStore()
    store.state.sessions[10] = _completed(make_session, now, creator_id=1)
    aggregator = StatisticsAggregator(store, _FakeMetadata(error=TimeoutError("mongo down")))

    with pytest.raises(TimeoutError):
        await aggregator.process(10, now)

    assert store.state.processed == set()
    assert store.state.session_stats == {}

    retry = await StatisticsAggregator(store, _FakeMetadata()).process(10, now)
    assert retry == PROCESSED
    assert store.state.session_stats[1]["count_all"] == 1
