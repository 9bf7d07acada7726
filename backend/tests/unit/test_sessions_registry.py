from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from engagement.domain.errors import CatalogMissingError
from engagement.domain.sessions import registry
from engagement.domain.sessions.models import SessionStatus


def test_transitions_are_forward_only():
    for transition in registry.TRANSITIONS:
        assert registry.can_transition(transition.source, transition.target)
    assert not registry.can_transition(SessionStatus.IN_PROGRESS, SessionStatus.RECRUITING)
    assert not registry.can_transition(SessionStatus.COMPLETED, SessionStatus.IN_PROGRESS)
    assert not registry.can_transition(SessionStatus.RECRUITING, SessionStatus.COMPLETED)


def test_completion_rule_is_evaluated_before_start_rule():
    assert registry.TRANSITIONS[0] is registry.COMPLETE_TRANSITION
    assert registry.TRANSITIONS[1] is registry.START_TRANSITION


def test_category_columns():
    assert registry.category_column(1) == "count_films"
    assert registry.category_column(2) == "count_games"
    assert registry.category_column(3) == "count_board_games"
    assert registry.category_column(7) == "count_other"
    assert registry.category_column(None) == "count_other"
    assert registry.category_name(3) == "board games"
    assert registry.category_name(42) == "other"


def test_build_catalog_from_rows():
    rows = [
        {"id": 1, "name": "24_hours", "offset_minutes": 1440},
        {"id": 3, "name": "1_hour", "offset_minutes": 60},
    ]
    catalog = registry.build_catalog(rows)
    assert [nt.name for nt in catalog] == ["24_hours", "1_hour"]
    assert catalog[0].offset == timedelta(hours=24)
    assert catalog[1].label == "1 hour"
    start = datetime(2026, 1, 2, 18, 0, tzinfo=timezone.utc)
    assert catalog[1].notify_time(start) == datetime(2026, 1, 2, 17, 0, tzinfo=timezone.utc)


def test_empty_catalog_is_an_integrity_error():
    with pytest.raises(CatalogMissingError):
        registry.build_catalog([])


class _RecordingConnection:
    def __init__(self) -> None:
        self.calls: list[tuple] = []

    async def execute(self, query: str, *args):
        self.calls.append((query, args))
        return "INSERT 0 1"


@pytest.mark.asyncio
async def test_seed_notification_types_inserts_each_offset_once():
    conn = _RecordingConnection()
    await registry.seed_notification_types(conn)
    seeded = [args for _query, args in conn.calls]
    assert [args[0] for args in seeded] == ["24_hours", "6_hours", "1_hour"]
    assert [args[2] for args in seeded] == [1440, 360, 60]
    assert all("ON CONFLICT (name) DO NOTHING" in query for query, _ in conn.calls)
