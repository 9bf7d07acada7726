"""Exactly-once folding of a completed session into per-user statistics."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import AsyncContextManager, List, Optional, Protocol, Sequence

from engagement.domain.errors import SessionNotCompletedError, SessionNotFinishedError, SessionNotFoundError
from engagement.domain.sessions.models import Session, SessionStatus
from engagement.domain.statistics import metrics
from engagement.domain.statistics.repo import Attendance
from engagement.infra.mongo import MetadataStore
from engagement.obs import metrics as obs_metrics

_LOG = logging.getLogger(__name__)

PROCESSED = "processed"
ALREADY_PROCESSED = "already_processed"


class StatsUnit(Protocol):
	async def lock_session(self, session_id: int) -> Optional[Session]:
		...

	async def mark_processed(self, session_id: int) -> bool:
		...

	async def list_member_ids(self, session: Session) -> List[int]:
		...

	async def ensure_rows(self, user_id: int) -> None:
		...

	async def record_created(self, user_id: int, participants: int) -> None:
		...

	async def record_attendance(self, user_id: int, minutes: int, session_type_id: Optional[int]) -> None:
		...

	async def record_genres(self, user_ids: Sequence[int], genres: Sequence[str]) -> int:
		...

	async def attendance_history(self, user_id: int) -> List[Attendance]:
		...

	async def write_derived(
		self,
		user_id: int,
		*,
		streak: int,
		weekday: Optional[int],
		top_category: Optional[int],
	) -> None:
		...


class StatsStore(Protocol):
	def transaction(self) -> AsyncContextManager[StatsUnit]:
		...


class StatisticsAggregator:
	"""Applies a completed session's contribution to every member's stats.

	The whole fold runs in one transaction with the session row locked. The
	processed marker is inserted first; if it already existed the call is a
	no-op, and any later failure rolls the marker back with everything else.
	"""

	def __init__(self, store: StatsStore, metadata: MetadataStore) -> None:
		self._store = store
		self._metadata = metadata

	async def process(self, session_id: int, now: Optional[datetime] = None) -> str:
		now = now or datetime.now(timezone.utc)
		try:
			async with self._store.transaction() as unit:
				session = await unit.lock_session(session_id)
				if session is None:
					raise SessionNotFoundError()
				if session.status is not SessionStatus.COMPLETED:
					raise SessionNotCompletedError()
				if session.end_time > now:
					raise SessionNotFinishedError()
				if not await unit.mark_processed(session_id):
					obs_metrics.inc_stats_processed("duplicate")
					_LOG.info("statistics.already_processed", extra={"session_id": session_id})
					return ALREADY_PROCESSED
				members = await self._fold(unit, session)
		except Exception:
			obs_metrics.inc_stats_processed("error")
			raise
		obs_metrics.inc_stats_processed("ok")
		_LOG.info("statistics.processed", extra={"session_id": session_id, "members": len(members)})
		return PROCESSED

	async def _fold(self, unit: StatsUnit, session: Session) -> List[int]:
		await unit.ensure_rows(session.creator_id)
		await unit.record_created(session.creator_id, session.current_users)

		members = await unit.list_member_ids(session)
		minutes = session.spent_minutes()
		for user_id in members:
			await unit.ensure_rows(user_id)
			await unit.record_attendance(user_id, minutes, session.session_type_id)

		found = await self._metadata.get_many([session.id])
		metadata = found.get(session.id)
		if metadata is not None and metadata.genres:
			await unit.record_genres(members, metadata.genres)

		for user_id in members:
			history = await unit.attendance_history(user_id)
			days = [entry.start_time for entry in history]
			await unit.write_derived(
				user_id,
				streak=metrics.longest_streak(days),
				weekday=metrics.most_popular_weekday(days),
				top_category=metrics.top_category(entry.session_type_id for entry in history),
			)
		return members
