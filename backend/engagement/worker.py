"""Scheduler process: the lifecycle ticker plus the popular-sessions cron job.

Run with ``python -m engagement.worker``.
"""

from __future__ import annotations

import asyncio
import logging
import signal

import httpx

from engagement.container import Clients, build_components
from engagement.infra import mongo, postgres
from engagement.infra import redis as redis_infra
from engagement.infra.scheduler import JobScheduler
from engagement.infra.schema import ensure_schema
from engagement.jobs.popular_refresh import PopularRefreshJob
from engagement.obs import init as obs_init
from engagement.settings import Settings, settings

_LOG = logging.getLogger(__name__)


async def run(config: Settings) -> None:
	pool = await postgres.create_pool(config)
	cache = redis_infra.create_redis(config)
	mongo_client = mongo.create_mongo(config)
	http = httpx.AsyncClient()
	clients = Clients(pool=pool, redis=cache, mongo=mongo_client, http=http)
	scheduler = JobScheduler()
	components = None
	try:
		await ensure_schema(pool)
		components = build_components(config, clients, with_ticker=True)
		ticker = components.ticker
		assert ticker is not None
		components.tasks.start()

		refresh_job = PopularRefreshJob(components.popularity)
		scheduler.start()
		scheduler.schedule_cron("popular-sessions-refresh", refresh_job.run_once, config.popular_refresh_cron)
		components.tasks.submit("popular_initial_fill", lambda: refresh_job.run_once(trigger="startup"))

		stop_event = asyncio.Event()
		loop = asyncio.get_running_loop()
		for sig in (signal.SIGINT, signal.SIGTERM):
			try:
				loop.add_signal_handler(sig, stop_event.set)
			except NotImplementedError:  # pragma: no cover - platform specific
				pass

		ticker_task = asyncio.create_task(ticker.run_forever(), name="lifecycle-ticker")
		_LOG.info("worker.started", extra={"interval": config.tick_interval_seconds})
		await stop_event.wait()
		_LOG.info("worker.stopping")
		ticker.stop()
		ticker_task.cancel()
		await asyncio.gather(ticker_task, return_exceptions=True)
	finally:
		scheduler.shutdown()
		if components is not None:
			await components.tasks.stop()
		await http.aclose()
		await mongo.close_mongo(mongo_client)
		await redis_infra.close_redis(cache)
		await postgres.close_pool(pool)


def main() -> None:
	obs_init()
	asyncio.run(run(settings))


if __name__ == "__main__":
	main()
