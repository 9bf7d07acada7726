"""Postgres queries used by the lifecycle advancer and the reminder dispatcher."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Sequence

import asyncpg

from engagement.domain.sessions import registry
from engagement.domain.sessions.models import Notification, NotificationType, Session, SessionStatus
from engagement.domain.sessions.registry import Transition

_LOG = logging.getLogger(__name__)

_SESSION_COLUMNS = """
	s.id, s.title, s.status, s.start_time, s.end_time, s.creator_id, s.group_id,
	s.current_users, s.max_users, s.duration, s.session_type_id, s.image_url
"""


@dataclass(slots=True)
class Recipients:
	"""External push addresses resolved for a batch of users."""

	chat_ids: List[int] = field(default_factory=list)
	device_tokens: List[str] = field(default_factory=list)

	def is_empty(self) -> bool:
		return not self.chat_ids and not self.device_tokens


def parse_chat_ids(rows: Iterable[tuple[int, str | None]]) -> List[int]:
	"""Parse stored chat ids, skipping users whose id is missing or malformed."""
	chat_ids: List[int] = []
	for user_id, raw in rows:
		if not raw:
			continue
		try:
			chat_ids.append(int(str(raw).strip()))
		except ValueError:
			_LOG.warning("recipients.invalid_chat_id", extra={"user_id": user_id})
	return chat_ids


class SessionRepository:
	"""Thin asyncpg glue; every method acquires its own connection."""

	def __init__(self, pool: asyncpg.Pool) -> None:
		self._pool = pool

	async def apply_transition(self, transition: Transition, now: datetime) -> List[int]:
		query = f"""
			UPDATE sessions
			SET status = $1, updated_at = NOW()
			WHERE status = $2 AND {transition.column} <= $3
			RETURNING id
		"""
		async with self._pool.acquire() as conn:
			rows = await conn.fetch(query, transition.target.value, transition.source.value, now)
		return [int(row["id"]) for row in rows]

	async def list_recruiting_between(self, start: datetime, end: datetime) -> List[Session]:
		async with self._pool.acquire() as conn:
			rows = await conn.fetch(
				f"""
				SELECT {_SESSION_COLUMNS}
				FROM sessions s
				WHERE s.status = $1 AND s.start_time BETWEEN $2 AND $3
				ORDER BY s.start_time ASC
				""",
				SessionStatus.RECRUITING.value,
				start,
				end,
			)
		return [Session.from_record(row) for row in rows]

	async def list_unprocessed_completed(self, now: datetime, limit: int, after_id: int = 0) -> List[int]:
		"""Completed sessions without a processed marker, keyset-paged by id."""
		async with self._pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT s.id
				FROM sessions s
				LEFT JOIN stats_processed_events e ON e.session_id = s.id
				WHERE s.status = $1 AND s.end_time <= $2 AND e.session_id IS NULL AND s.id > $4
				ORDER BY s.id ASC
				LIMIT $3
				""",
				SessionStatus.COMPLETED.value,
				now,
				limit,
				after_id,
			)
		return [int(row["id"]) for row in rows]

	async def load_notification_types(self) -> List[NotificationType]:
		async with self._pool.acquire() as conn:
			return await registry.load_notification_types(conn)

	async def notification_exists(self, session_id: int, notification_type_id: int) -> bool:
		async with self._pool.acquire() as conn:
			found = await conn.fetchval(
				"SELECT 1 FROM notifications WHERE session_id = $1 AND notification_type_id = $2",
				session_id,
				notification_type_id,
			)
		return bool(found)

	async def create_notification(self, notification: Notification) -> None:
		async with self._pool.acquire() as conn:
			await conn.execute(
				"""
				INSERT INTO notifications (
					user_id, session_id, notification_type_id, send_at, sent, title, text, image_url
				)
				VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
				ON CONFLICT (session_id, notification_type_id) DO NOTHING
				""",
				notification.user_id,
				notification.session_id,
				notification.notification_type_id,
				notification.send_at,
				notification.sent,
				notification.title,
				notification.text,
				notification.image_url,
			)

	async def list_participant_ids(self, session: Session) -> List[int]:
		async with self._pool.acquire() as conn:
			rows = await conn.fetch("SELECT user_id FROM session_users WHERE session_id = $1", session.id)
		return sorted({int(row["user_id"]) for row in rows} | {session.creator_id})

	async def resolve_recipients(self, user_ids: Sequence[int]) -> Recipients:
		if not user_ids:
			return Recipients()
		async with self._pool.acquire() as conn:
			user_rows = await conn.fetch(
				"SELECT id, telegram_id FROM users WHERE id = ANY($1::bigint[])",
				list(user_ids),
			)
			token_rows = await conn.fetch(
				"""
				SELECT device_token
				FROM device_users
				WHERE user_id = ANY($1::bigint[]) AND is_active = TRUE AND device_token IS NOT NULL
				""",
				list(user_ids),
			)
		return Recipients(
			chat_ids=parse_chat_ids((int(row["id"]), row["telegram_id"]) for row in user_rows),
			device_tokens=[row["device_token"] for row in token_rows],
		)

	async def deactivate_device_tokens(self, tokens: Sequence[str]) -> int:
		if not tokens:
			return 0
		async with self._pool.acquire() as conn:
			rows = await conn.fetch(
				"UPDATE device_users SET is_active = FALSE WHERE device_token = ANY($1::text[]) RETURNING 1",
				list(tokens),
			)
		return len(rows)
