"""Time-driven status advancement for scheduled sessions."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Protocol, Sequence

from engagement.domain.sessions import registry
from engagement.domain.sessions.registry import Transition
from engagement.obs import metrics as obs_metrics

_LOG = logging.getLogger(__name__)


class TransitionStore(Protocol):
	async def apply_transition(self, transition: Transition, now: datetime) -> List[int]:
		...


@dataclass(slots=True)
class AdvanceResult:
	started: List[int] = field(default_factory=list)
	completed: List[int] = field(default_factory=list)


class LifecycleAdvancer:
	"""Applies the forward-only transition rules as bulk conditional updates.

	Each rule only matches rows still in its source state, so repeated or
	concurrent passes are no-ops for sessions that already moved on.
	"""

	def __init__(self, store: TransitionStore, *, transitions: Sequence[Transition] = registry.TRANSITIONS) -> None:
		for transition in transitions:
			if not registry.can_transition(transition.source, transition.target):
				raise ValueError(f"non-forward transition {transition.source.value}->{transition.target.value}")
		self._store = store
		self._transitions = tuple(transitions)

	async def advance(self, now: Optional[datetime] = None) -> AdvanceResult:
		now = now or datetime.now(timezone.utc)
		result = AdvanceResult()
		for transition in self._transitions:
			ids = await self._store.apply_transition(transition, now)
			obs_metrics.inc_transition(transition.source.value, transition.target.value, len(ids))
			if transition is registry.COMPLETE_TRANSITION:
				result.completed.extend(ids)
			elif transition is registry.START_TRANSITION:
				result.started.extend(ids)
		if result.started or result.completed:
			_LOG.info(
				"lifecycle.advanced",
				extra={"started": len(result.started), "completed": len(result.completed)},
			)
		return result
