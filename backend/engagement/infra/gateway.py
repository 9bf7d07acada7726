"""Outbound message gateways: the chat-bot webhook and the push relay."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Protocol, Sequence

import httpx

from engagement.domain.errors import GatewayError
from engagement.obs import metrics as obs_metrics

_LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChatMessage:
	chat_ids: Sequence[int]
	title: str
	text: str
	image_url: str = ""

	def to_item(self) -> Dict[str, Any]:
		return {
			"telegramIds": list(self.chat_ids),
			"imageUrl": self.image_url,
			"title": self.title,
			"text": self.text,
		}


@dataclass
class PushResult:
	delivered: int = 0
	invalid_tokens: List[str] = field(default_factory=list)


class ChatGateway(Protocol):
	async def send(self, messages: Sequence[ChatMessage]) -> None:
		...


class PushGateway(Protocol):
	async def send(
		self,
		tokens: Sequence[str],
		*,
		title: str,
		body: str,
		image_url: str = "",
		data: Mapping[str, str] | None = None,
	) -> PushResult:
		...


async def _post(http: httpx.AsyncClient, channel: str, url: str, payload: Mapping[str, Any], headers: Mapping[str, str], timeout: float) -> httpx.Response:
	try:
		response = await http.post(url, json=payload, headers=dict(headers), timeout=timeout)
	except httpx.HTTPError as exc:
		obs_metrics.inc_gateway(channel, "error")
		raise GatewayError(f"{channel}_unreachable") from exc
	if response.status_code // 100 != 2:
		obs_metrics.inc_gateway(channel, "rejected")
		_LOG.warning(
			"gateway.non_success",
			extra={"channel": channel, "status_code": response.status_code, "response": response.text[:200]},
		)
		raise GatewayError(f"{channel}_status_{response.status_code}")
	obs_metrics.inc_gateway(channel, "ok")
	return response


@dataclass
class HttpChatGateway:
	"""Posts reminder batches to the chat-bot webhook."""

	http: httpx.AsyncClient
	url: str
	api_key: str = ""
	request_timeout: float = 10.0

	async def send(self, messages: Sequence[ChatMessage]) -> None:
		if not self.url:
			_LOG.debug("gateway.disabled", extra={"channel": "chat"})
			return
		items = [message.to_item() for message in messages if message.chat_ids]
		if not items:
			return
		await _post(self.http, "chat", self.url, {"items": items}, {"X-API-Key": self.api_key}, self.request_timeout)


@dataclass
class HttpPushGateway:
	"""Relays device pushes; the relay reports tokens it considers dead."""

	http: httpx.AsyncClient
	url: str
	api_key: str = ""
	request_timeout: float = 10.0

	async def send(
		self,
		tokens: Sequence[str],
		*,
		title: str,
		body: str,
		image_url: str = "",
		data: Mapping[str, str] | None = None,
	) -> PushResult:
		if not self.url:
			_LOG.debug("gateway.disabled", extra={"channel": "push"})
			return PushResult()
		if not tokens:
			return PushResult()
		payload = {
			"tokens": list(tokens),
			"title": title,
			"body": body,
			"image_url": image_url,
			"data": dict(data or {}),
		}
		response = await _post(self.http, "push", self.url, payload, {"X-API-Key": self.api_key}, self.request_timeout)
		try:
			document = response.json()
		except ValueError:
			document = {}
		invalid = document.get("invalid_tokens") if isinstance(document, dict) else None
		invalid_tokens = [str(token) for token in invalid or [] if token]
		return PushResult(delivered=len(tokens) - len(invalid_tokens), invalid_tokens=invalid_tokens)
