"""Static lookups: lifecycle transitions, reminder offsets and session categories."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, Optional, Sequence, Tuple

import asyncpg

from engagement.domain.errors import CatalogMissingError
from engagement.domain.sessions.models import NotificationType, SessionStatus


@dataclass(frozen=True, slots=True)
class Transition:
	"""A forward-only rule: move `source` to `target` once `column <= now`."""

	source: SessionStatus
	target: SessionStatus
	column: str


START_TRANSITION = Transition(SessionStatus.RECRUITING, SessionStatus.IN_PROGRESS, "start_time")
COMPLETE_TRANSITION = Transition(SessionStatus.IN_PROGRESS, SessionStatus.COMPLETED, "end_time")

# Completion is evaluated first so one pass advances a session at most one state.
TRANSITIONS: Tuple[Transition, ...] = (COMPLETE_TRANSITION, START_TRANSITION)

_ORDER = {status: idx for idx, status in enumerate(SessionStatus)}


def can_transition(source: SessionStatus, target: SessionStatus) -> bool:
	return _ORDER[target] == _ORDER[source] + 1


@dataclass(frozen=True, slots=True)
class NotificationTypeSeed:
	name: str
	description: str
	offset_minutes: int
	label: str


NOTIFICATION_TYPE_SEEDS: Tuple[NotificationTypeSeed, ...] = (
	NotificationTypeSeed("24_hours", "24 hours before start", 24 * 60, "24 hours"),
	NotificationTypeSeed("6_hours", "6 hours before start", 6 * 60, "6 hours"),
	NotificationTypeSeed("1_hour", "1 hour before start", 60, "1 hour"),
)

_LABELS: Dict[str, str] = {seed.name: seed.label for seed in NOTIFICATION_TYPE_SEEDS}

# Category ids with a dedicated counter column; anything else is "other".
CATEGORY_FILMS = 1
CATEGORY_GAMES = 2
CATEGORY_BOARD_GAMES = 3

_CATEGORY_COLUMNS: Dict[int, str] = {
	CATEGORY_FILMS: "count_films",
	CATEGORY_GAMES: "count_games",
	CATEGORY_BOARD_GAMES: "count_board_games",
}


def category_column(session_type_id: Optional[int]) -> str:
	return _CATEGORY_COLUMNS.get(session_type_id or 0, "count_other")


_CATEGORY_NAMES: Dict[int, str] = {
	CATEGORY_FILMS: "films",
	CATEGORY_GAMES: "video games",
	CATEGORY_BOARD_GAMES: "board games",
}


def category_name(session_type_id: Optional[int]) -> str:
	return _CATEGORY_NAMES.get(session_type_id or 0, "other")


def label_for(name: str) -> str:
	return _LABELS.get(name, name.replace("_", " "))


async def seed_notification_types(conn: asyncpg.Connection) -> None:
	"""Insert the reminder catalog once; existing rows are left untouched."""
	for seed in NOTIFICATION_TYPE_SEEDS:
		await conn.execute(
			"""
			INSERT INTO notification_types (name, description, offset_minutes)
			VALUES ($1, $2, $3)
			ON CONFLICT (name) DO NOTHING
			""",
			seed.name,
			seed.description,
			seed.offset_minutes,
		)


def build_catalog(rows: Sequence[asyncpg.Record]) -> list[NotificationType]:
	if not rows:
		raise CatalogMissingError("notification_types_empty")
	return [
		NotificationType(
			id=int(row["id"]),
			name=row["name"],
			offset=timedelta(minutes=int(row["offset_minutes"])),
			label=label_for(row["name"]),
		)
		for row in rows
	]


async def load_notification_types(conn: asyncpg.Connection) -> list[NotificationType]:
	rows = await conn.fetch("SELECT id, name, offset_minutes FROM notification_types ORDER BY offset_minutes DESC")
	return build_catalog(rows)
