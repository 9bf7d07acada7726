"""Pure derivations over a user's completed-attendance history."""

from __future__ import annotations

from collections import Counter
from datetime import date, datetime, timezone
from typing import Iterable, Optional


def _as_day(value: datetime | date) -> date:
	if isinstance(value, datetime):
		if value.tzinfo is not None:
			value = value.astimezone(timezone.utc)
		return value.date()
	return value


def longest_streak(days: Iterable[datetime | date]) -> int:
	"""Longest run of consecutive calendar days (UTC) with at least one session."""
	ordered = sorted({_as_day(d) for d in days})
	if not ordered:
		return 0
	best = current = 1
	for previous, day in zip(ordered, ordered[1:]):
		if (day - previous).days == 1:
			current += 1
			best = max(best, current)
		else:
			current = 1
	return best


def most_popular_weekday(days: Iterable[datetime | date]) -> Optional[int]:
	"""ISO weekday (1=Monday) seen most often; ties go to the earlier weekday."""
	counts = Counter(_as_day(d).isoweekday() for d in days)
	if not counts:
		return None
	return min(counts, key=lambda weekday: (-counts[weekday], weekday))


def top_category(session_type_ids: Iterable[Optional[int]]) -> Optional[int]:
	"""Most attended category; ties go to the lowest category id."""
	counts = Counter(tid for tid in session_type_ids if tid)
	if not counts:
		return None
	return min(counts, key=lambda tid: (-counts[tid], tid))
