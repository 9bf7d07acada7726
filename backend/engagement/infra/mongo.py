"""Document-store access for free-form session metadata (genres, location)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional, Protocol

from pymongo import AsyncMongoClient

from engagement.settings import Settings

_LOG = logging.getLogger(__name__)

COLLECTION = "session_metadata"


@dataclass(slots=True)
class SessionMetadata:
	session_id: int
	genres: list[str] = field(default_factory=list)
	location: Optional[Dict[str, Any]] = None

	@classmethod
	def from_document(cls, doc: Mapping[str, Any]) -> "SessionMetadata":
		genres = [str(g) for g in (doc.get("genres") or []) if g]
		location = doc.get("location")
		return cls(
			session_id=int(doc["session_id"]),
			genres=genres,
			location=dict(location) if isinstance(location, Mapping) else None,
		)


class MetadataStore(Protocol):
	async def get_many(self, session_ids: Iterable[int]) -> Dict[int, SessionMetadata]:
		...


class MongoMetadataStore:
	"""Keyed lookup of session metadata; ids without a document are simply absent."""

	def __init__(self, client: AsyncMongoClient, database: str, *, timeout_seconds: float = 5.0) -> None:
		self._collection = client[database][COLLECTION]
		self._timeout_ms = int(timeout_seconds * 1000)

	async def get_many(self, session_ids: Iterable[int]) -> Dict[int, SessionMetadata]:
		ids = sorted({int(sid) for sid in session_ids})
		if not ids:
			return {}
		result: Dict[int, SessionMetadata] = {}
		cursor = self._collection.find({"session_id": {"$in": ids}}, max_time_ms=self._timeout_ms)
		async for doc in cursor:
			try:
				metadata = SessionMetadata.from_document(doc)
			except (KeyError, TypeError, ValueError):
				_LOG.warning("metadata.malformed_document", extra={"doc_id": str(doc.get("_id"))})
				continue
			result[metadata.session_id] = metadata
		return result


def create_mongo(config: Settings) -> AsyncMongoClient:
	return AsyncMongoClient(config.mongo_url, serverSelectionTimeoutMS=int(config.mongo_timeout_seconds * 1000))


async def close_mongo(client: AsyncMongoClient | None) -> None:
	if client is not None:
		await client.close()
