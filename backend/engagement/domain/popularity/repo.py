"""Ranking query and owner lookup for the popularity cache."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

import asyncpg

from engagement.domain.popularity.models import PopularItem
from engagement.domain.sessions import registry
from engagement.domain.sessions.models import SessionStatus


@dataclass(frozen=True, slots=True)
class SessionOwner:
	session_id: int
	user_id: int
	email: str


class PopularityRepository:
	def __init__(self, pool: asyncpg.Pool) -> None:
		self._pool = pool

	async def top_sessions(self, now: datetime, *, limit: int, min_participants: int) -> List[PopularItem]:
		async with self._pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT s.id, s.title, s.start_time, s.end_time, s.duration, s.session_type_id,
					s.image_url, s.current_users, s.max_users, s.group_id,
					g.name AS group_name, g.owner_id
				FROM sessions s
				JOIN groups g ON g.id = s.group_id
				WHERE g.is_private = FALSE
					AND s.status = $1
					AND s.start_time > $2
					AND s.max_users > 0
					AND s.current_users >= $3
				ORDER BY (s.current_users::float / s.max_users::float) DESC, s.current_users DESC, s.id ASC
				LIMIT $4
				""",
				SessionStatus.RECRUITING.value,
				now,
				min_participants,
				limit,
			)
		items: List[PopularItem] = []
		for row in rows:
			duration = row["duration"]
			if not duration:
				duration = int((row["end_time"] - row["start_time"]).total_seconds() // 60)
			items.append(
				PopularItem(
					id=int(row["id"]),
					title=row["title"],
					start_time=row["start_time"],
					end_time=row["end_time"],
					duration=int(duration),
					session_type=registry.category_name(row["session_type_id"]),
					image_url=row["image_url"] or "",
					current_users=int(row["current_users"]),
					max_users=int(row["max_users"]),
					popularity_rate=int(row["current_users"]) / int(row["max_users"]),
					group_id=int(row["group_id"]),
					group_name=row["group_name"] or "",
					owner_id=int(row["owner_id"]) if row["owner_id"] is not None else None,
				)
			)
		return items

	async def owner_for(self, item: PopularItem) -> Optional[SessionOwner]:
		if item.owner_id is None:
			return None
		async with self._pool.acquire() as conn:
			row = await conn.fetchrow("SELECT id, email FROM users WHERE id = $1", item.owner_id)
		if row is None or not row["email"]:
			return None
		return SessionOwner(session_id=item.id, user_id=int(row["id"]), email=row["email"])
