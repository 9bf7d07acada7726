"""Cached popular-session snapshot and its JSON form."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Set


def _parse_ts(value: str) -> datetime:
	parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
	if parsed.tzinfo is None:
		parsed = parsed.replace(tzinfo=timezone.utc)
	return parsed


@dataclass(slots=True)
class PopularItem:
	id: int
	title: str
	start_time: datetime
	end_time: datetime
	duration: int
	session_type: str
	image_url: str
	current_users: int
	max_users: int
	popularity_rate: float
	group_id: int
	group_name: str
	owner_id: int | None = None
	genres: List[str] = field(default_factory=list)

	def to_dict(self) -> Dict[str, Any]:
		payload = asdict(self)
		payload["start_time"] = self.start_time.isoformat()
		payload["end_time"] = self.end_time.isoformat()
		return payload

	@classmethod
	def from_dict(cls, data: Mapping[str, Any]) -> "PopularItem":
		return cls(
			id=int(data["id"]),
			title=str(data["title"]),
			start_time=_parse_ts(data["start_time"]),
			end_time=_parse_ts(data["end_time"]),
			duration=int(data.get("duration") or 0),
			session_type=str(data.get("session_type") or ""),
			image_url=str(data.get("image_url") or ""),
			current_users=int(data["current_users"]),
			max_users=int(data["max_users"]),
			popularity_rate=float(data["popularity_rate"]),
			group_id=int(data.get("group_id") or 0),
			group_name=str(data.get("group_name") or ""),
			owner_id=int(data["owner_id"]) if data.get("owner_id") is not None else None,
			genres=[str(g) for g in data.get("genres") or []],
		)


@dataclass(slots=True)
class CachedPopularitySet:
	items: List[PopularItem]
	updated_at: datetime

	@property
	def count(self) -> int:
		return len(self.items)

	def ids(self) -> Set[int]:
		return {item.id for item in self.items}

	def age_seconds(self, now: datetime) -> float:
		return (now - self.updated_at).total_seconds()

	def dumps(self) -> str:
		return json.dumps(
			{
				"items": [item.to_dict() for item in self.items],
				"updated_at": self.updated_at.isoformat(),
				"count": self.count,
			},
			separators=(",", ":"),
		)

	@classmethod
	def loads(cls, raw: str | bytes) -> "CachedPopularitySet":
		data = json.loads(raw)
		if not isinstance(data, dict):
			raise ValueError("popular snapshot must be a JSON object")
		return cls(
			items=[PopularItem.from_dict(item) for item in data.get("items") or []],
			updated_at=_parse_ts(data["updated_at"]),
		)


def diff_new_ids(previous: Set[int], current: Set[int]) -> Set[int]:
	"""Ids present in the current snapshot but absent from the previous one."""
	return set(current) - set(previous)
