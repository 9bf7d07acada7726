"""Redis client construction for the popularity cache."""

from __future__ import annotations

import redis.asyncio as redis

from engagement.settings import Settings


def create_redis(config: Settings) -> redis.Redis:
	return redis.from_url(config.redis_url, decode_responses=True)


async def close_redis(client: redis.Redis | None) -> None:
	if client is not None:
		await client.aclose()
