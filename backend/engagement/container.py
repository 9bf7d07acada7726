"""Builds engine components from client handles owned by a process entry point."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import asyncpg
import httpx
import redis.asyncio as redis
from pymongo import AsyncMongoClient

from engagement.domain.notifications.dispatcher import NotificationDispatcher
from engagement.domain.popularity.repo import PopularityRepository
from engagement.domain.popularity.service import PopularityCacheManager
from engagement.domain.sessions.lifecycle import LifecycleAdvancer
from engagement.domain.sessions.repo import SessionRepository
from engagement.domain.statistics.repo import StatisticsRepository
from engagement.domain.statistics.service import StatisticsAggregator
from engagement.infra.gateway import HttpChatGateway, HttpPushGateway
from engagement.infra.mailer import SmtpMailer
from engagement.infra.mongo import MongoMetadataStore
from engagement.infra.statistics_client import HttpStatisticsTrigger, LocalStatisticsTrigger, StatisticsTrigger
from engagement.settings import Settings
from engagement.workers.pool import BackgroundTaskPool
from engagement.workers.ticker import LifecycleTicker


@dataclass
class Clients:
	pool: asyncpg.Pool
	redis: redis.Redis
	mongo: AsyncMongoClient
	http: httpx.AsyncClient


@dataclass
class Components:
	sessions: SessionRepository
	tasks: BackgroundTaskPool
	aggregator: StatisticsAggregator
	popularity: PopularityCacheManager
	ticker: Optional[LifecycleTicker] = None


def build_components(config: Settings, clients: Clients, *, with_ticker: bool = False) -> Components:
	tasks = BackgroundTaskPool(workers=config.background_workers, queue_size=config.background_queue_size)
	metadata = MongoMetadataStore(clients.mongo, config.mongo_database, timeout_seconds=config.mongo_timeout_seconds)
	sessions = SessionRepository(clients.pool)
	aggregator = StatisticsAggregator(StatisticsRepository(clients.pool), metadata)
	popularity = PopularityCacheManager(
		clients.redis,
		PopularityRepository(clients.pool),
		metadata,
		tasks,
		SmtpMailer(config),
		key=config.popular_cache_key,
		limit=config.popular_limit,
		min_participants=config.popular_min_participants,
		stale_after=timedelta(seconds=config.popular_stale_seconds),
		ttl=timedelta(seconds=config.popular_ttl_seconds),
		public_base_url=config.public_base_url,
		service_name=config.service_name,
	)
	components = Components(sessions=sessions, tasks=tasks, aggregator=aggregator, popularity=popularity)
	if with_ticker:
		components.ticker = _build_ticker(config, clients, components)
	return components


def _build_ticker(config: Settings, clients: Clients, components: Components) -> LifecycleTicker:
	dispatcher = NotificationDispatcher(
		components.sessions,
		HttpChatGateway(clients.http, config.bot_url or "", config.bot_api_key, config.gateway_timeout_seconds),
		HttpPushGateway(clients.http, config.push_url or "", config.push_api_key, config.gateway_timeout_seconds),
		window=timedelta(seconds=config.notify_window_seconds),
	)
	trigger: StatisticsTrigger
	if config.stats_trigger_mode == "local":
		trigger = LocalStatisticsTrigger(components.aggregator, components.tasks)
	else:
		trigger = HttpStatisticsTrigger(
			clients.http,
			config.stats_trigger_url,
			config.internal_token,
			config.stats_trigger_timeout_seconds,
		)
	return LifecycleTicker(
		LifecycleAdvancer(components.sessions),
		dispatcher,
		trigger,
		components.sessions,
		interval=config.tick_interval_seconds,
		backlog_batch=config.stats_backlog_batch,
	)
