"""Periodic rebuild of the popular-sessions cache."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from engagement.domain.popularity.service import PopularityCacheManager
from engagement.obs import metrics as obs_metrics
from engagement.obs.logging import bind_context, reset_context

_JOB_NAME = "popular-sessions-refresh"
_LOG = logging.getLogger(__name__)


class PopularRefreshJob:
	"""Rebuilds the snapshot on the cron schedule and once at start-up."""

	def __init__(self, manager: PopularityCacheManager) -> None:
		self.manager = manager

	async def run_once(self, *, trigger: str = "cron") -> int:
		started = datetime.now(timezone.utc)
		tokens = bind_context(job=_JOB_NAME)
		try:
			snapshot = await self.manager.rebuild(started, trigger=trigger)
			obs_metrics.BACKGROUND_RUNS.labels(name=_JOB_NAME, result="success").inc()
			return snapshot.count
		except Exception:
			obs_metrics.BACKGROUND_RUNS.labels(name=_JOB_NAME, result="error").inc()
			_LOG.exception("popular_refresh.failed", extra={"trigger": trigger})
			return 0
		finally:
			duration = (datetime.now(timezone.utc) - started).total_seconds()
			obs_metrics.BACKGROUND_DURATION.labels(name=_JOB_NAME).observe(duration)
			reset_context(tokens)
