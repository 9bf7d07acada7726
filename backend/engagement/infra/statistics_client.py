"""Hand-off of completed sessions from the scheduler to the statistics aggregator."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from engagement.domain.statistics.service import StatisticsAggregator
from engagement.obs import metrics as obs_metrics
from engagement.workers.pool import BackgroundTaskPool

_LOG = logging.getLogger(__name__)

INTERNAL_TOKEN_HEADER = "X-Internal-Token"


class StatisticsTrigger(Protocol):
	async def trigger(self, session_id: int) -> bool:
		...


@dataclass
class HttpStatisticsTrigger:
	"""Posts to the internal endpoint of the API process."""

	http: httpx.AsyncClient
	url: str
	token: str
	request_timeout: float = 5.0

	async def trigger(self, session_id: int) -> bool:
		try:
			response = await self.http.post(
				self.url,
				json={"session_id": session_id},
				headers={INTERNAL_TOKEN_HEADER: self.token},
				timeout=self.request_timeout,
			)
		except httpx.HTTPError as exc:
			obs_metrics.inc_stats_trigger("http", "error")
			_LOG.warning("statistics_trigger.unreachable", extra={"session_id": session_id, "error": str(exc)})
			return False
		if response.status_code // 100 != 2:
			obs_metrics.inc_stats_trigger("http", "rejected")
			_LOG.warning(
				"statistics_trigger.rejected",
				extra={"session_id": session_id, "status_code": response.status_code},
			)
			return False
		obs_metrics.inc_stats_trigger("http", "ok")
		return True


@dataclass
class LocalStatisticsTrigger:
	"""Runs the aggregator in-process on the background pool."""

	aggregator: StatisticsAggregator
	pool: BackgroundTaskPool

	async def trigger(self, session_id: int) -> bool:
		accepted = self.pool.submit(
			"statistics",
			lambda: self.aggregator.process(session_id),
			key=f"statistics:{session_id}",
		)
		obs_metrics.inc_stats_trigger("local", "ok" if accepted else "rejected")
		return accepted
