"""FastAPI application entrypoint for the engagement API process."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from engagement.api import internal, ops, popular
from engagement.api.errors import install_error_handlers
from engagement.container import Clients, build_components
from engagement.infra import mongo, postgres
from engagement.infra import redis as redis_infra
from engagement.infra.schema import ensure_schema
from engagement.obs import init as obs_init
from engagement.settings import settings

_LOG = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
	obs_init()
	pool = await postgres.create_pool(settings)
	cache = redis_infra.create_redis(settings)
	mongo_client = mongo.create_mongo(settings)
	http = httpx.AsyncClient()
	clients = Clients(pool=pool, redis=cache, mongo=mongo_client, http=http)
	await ensure_schema(pool)
	components = build_components(settings, clients)
	components.tasks.start()
	app.state.pool = pool
	app.state.redis = cache
	app.state.aggregator = components.aggregator
	app.state.popularity = components.popularity
	_LOG.info("api.started", extra={"environment": settings.environment})
	try:
		yield
	finally:
		await components.tasks.stop()
		await http.aclose()
		await mongo.close_mongo(mongo_client)
		await redis_infra.close_redis(cache)
		await postgres.close_pool(pool)


def create_app() -> FastAPI:
	application = FastAPI(title="Friendship Engagement Engine", lifespan=lifespan)
	install_error_handlers(application)
	application.include_router(ops.router)
	application.include_router(internal.router)
	application.include_router(popular.router)
	return application


app = create_app()
