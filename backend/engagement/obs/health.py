"""Health check helpers for liveness and readiness probes."""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Dict, Optional, Tuple

import asyncpg
import redis.asyncio as redis

from engagement.obs import metrics

LOGGER = logging.getLogger(__name__)


async def _redis_status(client: Optional[redis.Redis], timeout: float = 0.2) -> Dict[str, Any]:
	if client is None:
		return {"ok": False, "error": "not_configured"}
	start = perf_counter()
	try:
		await asyncio.wait_for(client.ping(), timeout=timeout)
		metrics.mark_redis(True)
		return {"ok": True, "latency_ms": round((perf_counter() - start) * 1000, 2)}
	except Exception as exc:  # pragma: no cover - depends on runtime
		metrics.mark_redis(False)
		LOGGER.warning("Redis readiness check failed", exc_info=True)
		return {"ok": False, "error": str(exc)}


async def _postgres_status(pool: Optional[asyncpg.Pool], timeout: float = 0.3) -> Dict[str, Any]:
	if pool is None:
		return {"ok": False, "error": "pool_unavailable"}
	start = perf_counter()
	try:
		async with pool.acquire() as conn:
			await asyncio.wait_for(conn.execute("SELECT 1"), timeout=timeout)
		metrics.mark_postgres(True)
		return {"ok": True, "latency_ms": round((perf_counter() - start) * 1000, 2)}
	except Exception as exc:  # pragma: no cover - depends on runtime
		metrics.mark_postgres(False)
		LOGGER.warning("Postgres readiness query failed", exc_info=True)
		return {"ok": False, "error": str(exc)}


async def liveness() -> Dict[str, Any]:
	return {"status": "ok"}


async def readiness(pool: Optional[asyncpg.Pool], cache: Optional[redis.Redis]) -> Tuple[int, Dict[str, Any]]:
	redis_state = await _redis_status(cache)
	postgres_state = await _postgres_status(pool)
	ok = bool(redis_state.get("ok") and postgres_state.get("ok"))
	return (
		200 if ok else 503,
		{
			"status": "ok" if ok else "degraded",
			"checks": {"redis": redis_state, "postgres": postgres_state},
		},
	)
