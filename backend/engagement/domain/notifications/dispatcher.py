"""Time-windowed, deduplicated session reminders."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Protocol, Sequence, Tuple

from engagement.domain.errors import GatewayError
from engagement.domain.notifications import messages
from engagement.domain.sessions.models import Notification, NotificationType, Session
from engagement.domain.sessions.repo import Recipients
from engagement.infra.gateway import ChatGateway, ChatMessage, PushGateway
from engagement.obs import metrics as obs_metrics
from engagement.obs.logging import bind_context, reset_context

_LOG = logging.getLogger(__name__)

DEFAULT_WINDOW = timedelta(seconds=30)


class ReminderStore(Protocol):
	async def list_recruiting_between(self, start: datetime, end: datetime) -> List[Session]:
		...

	async def load_notification_types(self) -> List[NotificationType]:
		...

	async def notification_exists(self, session_id: int, notification_type_id: int) -> bool:
		...

	async def create_notification(self, notification: Notification) -> None:
		...

	async def list_participant_ids(self, session: Session) -> List[int]:
		...

	async def resolve_recipients(self, user_ids: Sequence[int]) -> Recipients:
		...

	async def deactivate_device_tokens(self, tokens: Sequence[str]) -> int:
		...


@dataclass
class DispatchResult:
	sent: List[Tuple[int, int]] = field(default_factory=list)
	failed: List[Tuple[int, int]] = field(default_factory=list)


def in_window(now: datetime, notify_time: datetime, window: timedelta) -> bool:
	"""Open interval around the notify time; both edges are excluded."""
	return notify_time - window < now < notify_time + window


class NotificationDispatcher:
	"""Fires one batched reminder per (session, notification type) pair.

	The pair is the dedup key: an existing notification row means the
	reminder was already attempted and it is never sent again. Gateways are
	called before the row is written, and a gateway failure is logged without
	retry, so delivery is best-effort at most once per pair.
	"""

	def __init__(
		self,
		store: ReminderStore,
		chat: ChatGateway,
		push: PushGateway,
		*,
		window: timedelta = DEFAULT_WINDOW,
		rng: Optional[random.Random] = None,
	) -> None:
		self._store = store
		self._chat = chat
		self._push = push
		self._window = window
		self._rng = rng

	async def dispatch(self, now: Optional[datetime] = None) -> DispatchResult:
		now = now or datetime.now(timezone.utc)
		result = DispatchResult()
		catalog = await self._store.load_notification_types()
		horizon = max(nt.offset for nt in catalog) + self._window
		sessions = await self._store.list_recruiting_between(now, now + horizon)
		for session in sessions:
			for notification_type in catalog:
				if not in_window(now, notification_type.notify_time(session.start_time), self._window):
					continue
				key = (session.id, notification_type.id)
				tokens = bind_context(session_id=str(session.id))
				try:
					if await self._fire(session, notification_type, now):
						result.sent.append(key)
				except Exception:
					obs_metrics.inc_reminder_skipped("error")
					result.failed.append(key)
					_LOG.exception(
						"dispatcher.reminder_failed",
						extra={"notification_type": notification_type.name},
					)
				finally:
					reset_context(tokens)
		return result

	async def _fire(self, session: Session, notification_type: NotificationType, now: datetime) -> bool:
		if await self._store.notification_exists(session.id, notification_type.id):
			obs_metrics.inc_reminder_skipped("duplicate")
			return False
		text = messages.reminder_text(session, notification_type)
		title = messages.random_title(self._rng)
		recipients = await self._resolve(session)
		await self._deliver(session, recipients, title, text)
		await self._store.create_notification(
			Notification(
				session_id=session.id,
				notification_type_id=notification_type.id,
				user_id=session.creator_id,
				send_at=now,
				sent=True,
				title=title,
				text=text,
				image_url=session.image_url,
			)
		)
		obs_metrics.inc_reminder_sent(notification_type.name)
		_LOG.info(
			"dispatcher.reminder_sent",
			extra={
				"notification_type": notification_type.name,
				"chat_recipients": len(recipients.chat_ids),
				"device_recipients": len(recipients.device_tokens),
			},
		)
		return True

	async def _resolve(self, session: Session) -> Recipients:
		user_ids = await self._store.list_participant_ids(session)
		return await self._store.resolve_recipients(user_ids)

	async def _deliver(self, session: Session, recipients: Recipients, title: str, text: str) -> None:
		if recipients.is_empty():
			_LOG.info("dispatcher.no_recipients")
			return
		if recipients.chat_ids:
			try:
				await self._chat.send([ChatMessage(recipients.chat_ids, title, text, session.image_url)])
			except GatewayError as exc:
				_LOG.warning("dispatcher.gateway_failed", extra={"channel": "chat", "reason": exc.reason})
		if recipients.device_tokens:
			try:
				outcome = await self._push.send(
					recipients.device_tokens,
					title=title,
					body=text,
					image_url=session.image_url,
					data={"session_id": str(session.id), "type": "session_reminder"},
				)
			except GatewayError as exc:
				_LOG.warning("dispatcher.gateway_failed", extra={"channel": "push", "reason": exc.reason})
				return
			if outcome.invalid_tokens:
				# Delivery already happened; the notification row must still be written.
				try:
					removed = await self._store.deactivate_device_tokens(outcome.invalid_tokens)
				except Exception:
					_LOG.exception("dispatcher.token_cleanup_failed", extra={"count": len(outcome.invalid_tokens)})
					return
				_LOG.info("dispatcher.tokens_deactivated", extra={"count": removed})
