"""Cache-aside top-N popular sessions with stale refresh and change detection."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Protocol, Sequence

import redis.asyncio as redis

from engagement.domain.popularity import templates
from engagement.domain.popularity.models import CachedPopularitySet, PopularItem, diff_new_ids
from engagement.domain.popularity.repo import SessionOwner
from engagement.infra.mailer import Mailer, mask_email
from engagement.infra.mongo import MetadataStore
from engagement.obs import metrics as obs_metrics
from engagement.workers.pool import BackgroundTaskPool

_LOG = logging.getLogger(__name__)

REBUILD_KEY = "popularity:rebuild"


class PopularityStore(Protocol):
	async def top_sessions(self, now: datetime, *, limit: int, min_participants: int) -> List[PopularItem]:
		...

	async def owner_for(self, item: PopularItem) -> Optional[SessionOwner]:
		...


class PopularityCacheManager:
	"""Serves the popular-session snapshot from Redis.

	A missing key is rebuilt synchronously. A snapshot older than
	`stale_after` is still served while one background rebuild is queued.
	Every rebuild compares the new ids with the previous snapshot and emails
	the owners of sessions that just entered the set.
	"""

	def __init__(
		self,
		cache: redis.Redis,
		store: PopularityStore,
		metadata: MetadataStore,
		pool: BackgroundTaskPool,
		mailer: Mailer,
		*,
		key: str = "popular_sessions:top10",
		limit: int = 10,
		min_participants: int = 2,
		stale_after: timedelta = timedelta(hours=6),
		ttl: timedelta = timedelta(hours=7),
		public_base_url: str = "",
		service_name: str = "Friendship",
	) -> None:
		self.cache = cache
		self.store = store
		self.metadata = metadata
		self.pool = pool
		self.mailer = mailer
		self.key = key
		self.limit = limit
		self.min_participants = min_participants
		self.stale_after = stale_after
		self.ttl = ttl
		self.public_base_url = public_base_url.rstrip("/")
		self.service_name = service_name

	async def get_popular(self, now: Optional[datetime] = None) -> CachedPopularitySet:
		now = now or datetime.now(timezone.utc)
		snapshot = await self._read()
		if snapshot is None:
			obs_metrics.inc_popular_read("miss")
			return await self.rebuild(now, trigger="miss")
		if snapshot.age_seconds(now) > self.stale_after.total_seconds():
			obs_metrics.inc_popular_read("stale")
			self.schedule_refresh()
		else:
			obs_metrics.inc_popular_read("hit")
		return snapshot

	async def invalidate(self) -> None:
		"""Drop the snapshot so the next read rebuilds it synchronously."""
		await self.cache.delete(self.key)

	def schedule_refresh(self) -> bool:
		return self.pool.submit("popular_rebuild", lambda: self.rebuild(trigger="stale"), key=REBUILD_KEY)

	async def rebuild(self, now: Optional[datetime] = None, *, trigger: str = "cron") -> CachedPopularitySet:
		now = now or datetime.now(timezone.utc)
		try:
			items = await self.store.top_sessions(now, limit=self.limit, min_participants=self.min_participants)
			await self._attach_genres(items)
			previous = await self._read()
			snapshot = CachedPopularitySet(items=items, updated_at=now)
			await self.cache.set(self.key, snapshot.dumps(), ex=int(self.ttl.total_seconds()))
		except Exception:
			obs_metrics.inc_popular_rebuild(trigger, "error")
			raise
		obs_metrics.inc_popular_rebuild(trigger, "ok")
		new_ids = diff_new_ids(previous.ids() if previous else set(), snapshot.ids())
		_LOG.info(
			"popularity.rebuilt",
			extra={"trigger": trigger, "count": snapshot.count, "new": len(new_ids)},
		)
		if new_ids:
			obs_metrics.POPULAR_NEW_ITEMS.inc(len(new_ids))
			fresh = [item for item in items if item.id in new_ids]
			self.pool.submit("popular_owner_emails", lambda: self.notify_owners(fresh))
		return snapshot

	async def notify_owners(self, items: Sequence[PopularItem]) -> int:
		sent = 0
		for item in items:
			try:
				if await self._notify_owner(item):
					sent += 1
			except Exception:
				obs_metrics.inc_owner_email("error")
				_LOG.exception("popularity.owner_email_failed", extra={"popular_session_id": item.id})
		return sent

	async def _notify_owner(self, item: PopularItem) -> bool:
		owner = await self.store.owner_for(item)
		if owner is None:
			obs_metrics.inc_owner_email("no_owner")
			return False
		email = templates.render(
			templates.POPULAR_SESSION,
			{
				"service_name": self.service_name,
				"session_title": item.title,
				"group_name": item.group_name,
				"start_time": item.start_time,
				"action_url": f"{self.public_base_url}/sessions/{item.id}",
			},
		)
		delivered = await self.mailer.send(owner.email, email.subject, email.html)
		obs_metrics.inc_owner_email("ok" if delivered else "skipped")
		_LOG.info(
			"popularity.owner_notified",
			extra={"popular_session_id": item.id, "email_hash": mask_email(owner.email), "delivered": delivered},
		)
		return delivered

	async def _attach_genres(self, items: List[PopularItem]) -> None:
		if not items:
			return
		try:
			found = await self.metadata.get_many([item.id for item in items])
		except Exception as exc:
			_LOG.warning("popularity.metadata_unavailable", extra={"error": str(exc)})
			return
		for item in items:
			metadata = found.get(item.id)
			item.genres = list(metadata.genres) if metadata else []

	async def _read(self) -> Optional[CachedPopularitySet]:
		raw = await self.cache.get(self.key)
		if raw is None:
			return None
		try:
			return CachedPopularitySet.loads(raw)
		except (ValueError, KeyError, TypeError):
			_LOG.warning("popularity.cache_corrupt", extra={"key": self.key})
			return None
