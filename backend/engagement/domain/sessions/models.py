"""Domain models for scheduled sessions and their reminders."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Mapping, Optional


class SessionStatus(str, Enum):
	"""Lifecycle states, in forward order."""

	RECRUITING = "recruiting"
	IN_PROGRESS = "in_progress"
	COMPLETED = "completed"


@dataclass(slots=True)
class Session:
	"""A scheduled session as seen by the engine."""

	id: int
	title: str
	status: SessionStatus
	start_time: datetime
	end_time: datetime
	creator_id: int
	group_id: int
	current_users: int = 0
	max_users: int = 0
	duration_minutes: Optional[int] = None
	session_type_id: Optional[int] = None
	image_url: str = ""

	@classmethod
	def from_record(cls, row: Mapping[str, Any]) -> "Session":
		return cls(
			id=int(row["id"]),
			title=row["title"],
			status=SessionStatus(row["status"]),
			start_time=row["start_time"],
			end_time=row["end_time"],
			creator_id=int(row["creator_id"]),
			group_id=int(row["group_id"]),
			current_users=int(row["current_users"] or 0),
			max_users=int(row["max_users"] or 0),
			duration_minutes=row["duration"],
			session_type_id=row["session_type_id"],
			image_url=row["image_url"] or "",
		)

	def spent_minutes(self) -> int:
		"""Session length in minutes, derived from the timestamps when duration is unset."""
		if self.duration_minutes:
			return int(self.duration_minutes)
		return max(0, int((self.end_time - self.start_time).total_seconds() // 60))


@dataclass(frozen=True, slots=True)
class NotificationType:
	"""Catalog entry: a reminder that fires `offset` before a session starts."""

	id: int
	name: str
	offset: timedelta
	label: str = ""

	def notify_time(self, start_time: datetime) -> datetime:
		return start_time - self.offset


@dataclass(slots=True)
class Notification:
	"""A reminder that has fired for one (session, notification type) pair."""

	session_id: int
	notification_type_id: int
	user_id: int
	send_at: datetime
	sent: bool
	title: str
	text: str
	image_url: str = ""
	id: Optional[int] = None
