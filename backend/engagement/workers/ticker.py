"""Fixed-interval driver for lifecycle advancement, reminders and statistics hand-off."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional, Protocol, TypeVar

from engagement.domain.notifications.dispatcher import DispatchResult, NotificationDispatcher
from engagement.domain.sessions.lifecycle import AdvanceResult, LifecycleAdvancer
from engagement.infra.statistics_client import StatisticsTrigger
from engagement.obs import metrics as obs_metrics
from engagement.obs.logging import bind_context, reset_context

_LOG = logging.getLogger(__name__)

T = TypeVar("T")


class BacklogSource(Protocol):
	async def list_unprocessed_completed(self, now: datetime, limit: int, after_id: int = 0) -> List[int]:
		...


@dataclass
class TickReport:
	tick_id: str
	advanced: Optional[AdvanceResult] = None
	dispatched: Optional[DispatchResult] = None
	handed_off: List[int] = field(default_factory=list)
	failed_steps: List[str] = field(default_factory=list)

	@property
	def ok(self) -> bool:
		return not self.failed_steps


class LifecycleTicker:
	"""Runs one tick at a time; the next tick starts only after the previous finished.

	Steps run in order and each is isolated: a failure or timeout in one step
	is logged and counted, and the remaining steps still run.
	"""

	def __init__(
		self,
		advancer: LifecycleAdvancer,
		dispatcher: NotificationDispatcher,
		trigger: StatisticsTrigger,
		backlog: BacklogSource,
		*,
		interval: float = 60.0,
		step_timeout: float = 50.0,
		backlog_batch: int = 100,
	) -> None:
		self.advancer = advancer
		self.dispatcher = dispatcher
		self.trigger = trigger
		self.backlog = backlog
		self.interval = interval
		self.step_timeout = step_timeout
		self.backlog_batch = backlog_batch
		self._backlog_cursor = 0
		self._running = False

	async def run_forever(self) -> None:
		self._running = True
		while self._running:
			started = time.monotonic()
			await self.tick()
			elapsed = time.monotonic() - started
			await asyncio.sleep(max(0.0, self.interval - elapsed))

	def stop(self) -> None:
		self._running = False

	async def tick(self, now: Optional[datetime] = None) -> TickReport:
		now = now or datetime.now(timezone.utc)
		report = TickReport(tick_id=uuid.uuid4().hex[:12])
		tokens = bind_context(tick_id=report.tick_id)
		started = time.perf_counter()
		try:
			report.advanced = await self._step("advance", report, lambda: self.advancer.advance(now))
			report.dispatched = await self._step("dispatch", report, lambda: self.dispatcher.dispatch(now))
			handed = await self._step("statistics", report, lambda: self._hand_off(now, report.advanced))
			report.handed_off = handed or []
		finally:
			obs_metrics.TICK_DURATION.observe(time.perf_counter() - started)
			obs_metrics.inc_tick("ok" if report.ok else "partial")
			if not report.ok:
				_LOG.warning("ticker.tick_partial", extra={"failed_steps": report.failed_steps})
			reset_context(tokens)
		return report

	async def _step(self, name: str, report: TickReport, factory: Callable[[], Awaitable[T]]) -> Optional[T]:
		try:
			return await asyncio.wait_for(factory(), timeout=self.step_timeout)
		except asyncio.TimeoutError:
			_LOG.warning("ticker.step_timeout", extra={"step": name, "timeout": self.step_timeout})
		except Exception:
			_LOG.exception("ticker.step_failed", extra={"step": name})
		obs_metrics.inc_tick_step_failure(name)
		report.failed_steps.append(name)
		return None

	async def _hand_off(self, now: datetime, advanced: Optional[AdvanceResult]) -> List[int]:
		session_ids: List[int] = list(advanced.completed) if advanced else []
		for session_id in await self._next_backlog_page(now):
			if session_id not in session_ids:
				session_ids.append(session_id)
		handed: List[int] = []
		for session_id in session_ids:
			try:
				if await self.trigger.trigger(session_id):
					handed.append(session_id)
			except Exception:
				_LOG.exception("ticker.handoff_failed", extra={"session_id": session_id})
		return handed

	async def _next_backlog_page(self, now: datetime) -> List[int]:
		"""Walk the backlog by id so sessions that keep failing cannot fill every batch."""
		page = await self.backlog.list_unprocessed_completed(now, self.backlog_batch, self._backlog_cursor)
		self._backlog_cursor = page[-1] if len(page) >= self.backlog_batch else 0
		return page
