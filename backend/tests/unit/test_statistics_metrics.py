from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from engagement.domain.statistics import metrics

MONDAY = date(2026, 3, 2)


def _days(*offsets: int) -> list[date]:
    return [MONDAY + timedelta(days=offset) for offset in offsets]


def test_longest_streak_counts_consecutive_days():
    # Mon, Tue, Wed, Fri
    assert metrics.longest_streak(_days(0, 1, 2, 4)) == 3


def test_longest_streak_ignores_multiple_sessions_on_one_day():
    stamps = [
        datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc),
        datetime(2026, 3, 2, 21, 0, tzinfo=timezone.utc),
        datetime(2026, 3, 3, 10, 0, tzinfo=timezone.utc),
    ]
    assert metrics.longest_streak(stamps) == 2


def test_longest_streak_uses_utc_calendar_days():
    plus_three = timezone(timedelta(hours=3))
    # 01:00 at +03:00 is still the previous UTC day.
    stamps = [datetime(2026, 3, 3, 1, 0, tzinfo=plus_three), datetime(2026, 3, 3, 12, 0, tzinfo=timezone.utc)]
    assert metrics.longest_streak(stamps) == 2


def test_longest_streak_empty_history():
    assert metrics.longest_streak([]) == 0
    assert metrics.longest_streak(_days(5)) == 1


def test_most_popular_weekday_breaks_ties_by_earliest_day():
    # Two Wednesdays, two Fridays, one Monday
    assert metrics.most_popular_weekday(_days(2, 9, 4, 11, 0)) == 3
    assert metrics.most_popular_weekday(_days(6, 4)) == 5
    assert metrics.most_popular_weekday([]) is None


def test_top_category_breaks_ties_by_lowest_id():
    assert metrics.top_category([3, 2, 3, 2, 1]) == 2
    assert metrics.top_category([4, 4, 1]) == 4
    assert metrics.top_category([None, None]) is None
