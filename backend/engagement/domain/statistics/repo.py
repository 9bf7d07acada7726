"""Transactional Postgres access for the statistics aggregator."""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncIterator, Iterable, List, Optional, Sequence

import asyncpg

from engagement.domain.sessions import registry
from engagement.domain.sessions.models import Session, SessionStatus


@dataclass(frozen=True, slots=True)
class Attendance:
	start_time: datetime
	session_type_id: Optional[int]


class StatsTransaction:
	"""Statements issued on one connection inside one open transaction."""

	def __init__(self, conn: asyncpg.Connection) -> None:
		self._conn = conn

	async def lock_session(self, session_id: int) -> Optional[Session]:
		row = await self._conn.fetchrow(
			"""
			SELECT id, title, status, start_time, end_time, creator_id, group_id,
				current_users, max_users, duration, session_type_id, image_url
			FROM sessions
			WHERE id = $1
			FOR UPDATE
			""",
			session_id,
		)
		return Session.from_record(row) if row else None

	async def mark_processed(self, session_id: int) -> bool:
		row = await self._conn.fetchrow(
			"""
			INSERT INTO stats_processed_events (session_id)
			VALUES ($1)
			ON CONFLICT (session_id) DO NOTHING
			RETURNING session_id
			""",
			session_id,
		)
		return row is not None

	async def list_member_ids(self, session: Session) -> List[int]:
		rows = await self._conn.fetch("SELECT user_id FROM session_users WHERE session_id = $1", session.id)
		return sorted({int(row["user_id"]) for row in rows} | {session.creator_id})

	async def ensure_rows(self, user_id: int) -> None:
		await self._conn.execute(
			"INSERT INTO user_side_stats (user_id) VALUES ($1) ON CONFLICT (user_id) DO NOTHING",
			user_id,
		)
		await self._conn.execute(
			"INSERT INTO user_session_stats (user_id) VALUES ($1) ON CONFLICT (user_id) DO NOTHING",
			user_id,
		)

	async def record_created(self, user_id: int, participants: int) -> None:
		await self._conn.execute(
			"""
			UPDATE user_side_stats
			SET count_created = count_created + 1,
				biggest_session = GREATEST(biggest_session, $2)
			WHERE user_id = $1
			""",
			user_id,
			participants,
		)

	async def record_attendance(self, user_id: int, minutes: int, session_type_id: Optional[int]) -> None:
		column = registry.category_column(session_type_id)
		await self._conn.execute(
			f"""
			UPDATE user_session_stats
			SET count_all = count_all + 1,
				spent_minutes = spent_minutes + $2,
				{column} = {column} + 1
			WHERE user_id = $1
			""",
			user_id,
			minutes,
		)

	async def record_genres(self, user_ids: Sequence[int], genres: Iterable[str]) -> int:
		names = sorted({name.strip() for name in genres if name and name.strip()})
		for name in names:
			genre_id = await self._conn.fetchval(
				"""
				INSERT INTO genres (name) VALUES ($1)
				ON CONFLICT (name) DO UPDATE SET name = EXCLUDED.name
				RETURNING id
				""",
				name,
			)
			await self._conn.executemany(
				"""
				INSERT INTO user_genre_stats (user_id, genre_id, count)
				VALUES ($1, $2, 1)
				ON CONFLICT (user_id, genre_id) DO UPDATE SET count = user_genre_stats.count + 1
				""",
				[(user_id, genre_id) for user_id in user_ids],
			)
		return len(names)

	async def attendance_history(self, user_id: int) -> List[Attendance]:
		rows = await self._conn.fetch(
			"""
			SELECT s.start_time, s.session_type_id
			FROM sessions s
			WHERE s.status = $2
				AND (
					s.creator_id = $1
					OR EXISTS (
						SELECT 1 FROM session_users su WHERE su.session_id = s.id AND su.user_id = $1
					)
				)
			""",
			user_id,
			SessionStatus.COMPLETED.value,
		)
		return [Attendance(row["start_time"], row["session_type_id"]) for row in rows]

	async def write_derived(
		self,
		user_id: int,
		*,
		streak: int,
		weekday: Optional[int],
		top_category: Optional[int],
	) -> None:
		await self._conn.execute(
			"UPDATE user_side_stats SET longest_streak = $2, favorite_weekday = $3 WHERE user_id = $1",
			user_id,
			streak,
			weekday,
		)
		if top_category is None:
			return
		await self._conn.execute(
			"""
			INSERT INTO user_top_category (user_id, session_type_id)
			VALUES ($1, $2)
			ON CONFLICT (user_id) DO UPDATE SET session_type_id = EXCLUDED.session_type_id
			""",
			user_id,
			top_category,
		)


class StatisticsRepository:
	def __init__(self, pool: asyncpg.Pool) -> None:
		self._pool = pool

	@asynccontextmanager
	async def transaction(self) -> AsyncIterator[StatsTransaction]:
		async with self._pool.acquire() as conn:
			async with conn.transaction():
				yield StatsTransaction(conn)
