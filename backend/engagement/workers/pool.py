"""Bounded fire-and-forget task pool with a logging error sink."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Set

from engagement.obs import metrics as obs_metrics

_LOG = logging.getLogger(__name__)

TaskFactory = Callable[[], Awaitable[object]]


@dataclass(frozen=True)
class _Job:
	name: str
	factory: TaskFactory
	key: Optional[str] = None


class BackgroundTaskPool:
	"""Fixed number of asyncio workers draining a bounded queue.

	`submit` never blocks: a full queue rejects the task. Tasks submitted
	with a `key` are single-flight, so a second submission with the same key
	is dropped while the first is queued or running. Failures are logged and
	counted, never propagated to the submitter.
	"""

	def __init__(self, *, workers: int = 4, queue_size: int = 256) -> None:
		self.workers = max(1, workers)
		self._queue: asyncio.Queue[_Job] = asyncio.Queue(maxsize=max(1, queue_size))
		self._tasks: list[asyncio.Task] = []
		self._inflight: Set[str] = set()
		self._running = False

	@property
	def running(self) -> bool:
		return self._running

	def start(self) -> None:
		if self._running:
			return
		self._running = True
		for idx in range(self.workers):
			self._tasks.append(asyncio.create_task(self._worker(), name=f"background-pool-{idx}"))

	async def stop(self, *, drain_timeout: float = 5.0) -> None:
		if not self._running:
			return
		try:
			await asyncio.wait_for(self._queue.join(), timeout=drain_timeout)
		except asyncio.TimeoutError:
			_LOG.warning("background.drain_timeout", extra={"pending": self._queue.qsize()})
		self._running = False
		for task in self._tasks:
			task.cancel()
		await asyncio.gather(*self._tasks, return_exceptions=True)
		self._tasks.clear()

	def submit(self, name: str, factory: TaskFactory, *, key: Optional[str] = None) -> bool:
		if key is not None and key in self._inflight:
			obs_metrics.inc_background_task(name, "deduplicated")
			return False
		try:
			self._queue.put_nowait(_Job(name, factory, key))
		except asyncio.QueueFull:
			obs_metrics.inc_background_task(name, "rejected")
			_LOG.warning("background.queue_full", extra={"task": name})
			return False
		if key is not None:
			self._inflight.add(key)
		obs_metrics.BACKGROUND_QUEUE_DEPTH.set(self._queue.qsize())
		return True

	def is_inflight(self, key: str) -> bool:
		return key in self._inflight

	async def join(self) -> None:
		await self._queue.join()

	async def _worker(self) -> None:
		while True:
			job = await self._queue.get()
			obs_metrics.BACKGROUND_QUEUE_DEPTH.set(self._queue.qsize())
			try:
				await job.factory()
			except asyncio.CancelledError:
				raise
			except Exception:
				obs_metrics.inc_background_task(job.name, "error")
				_LOG.exception("background.task_failed", extra={"task": job.name})
			else:
				obs_metrics.inc_background_task(job.name, "ok")
			finally:
				if job.key is not None:
					self._inflight.discard(job.key)
				self._queue.task_done()
