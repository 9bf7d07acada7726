from __future__ import annotations

import json

import httpx
import pytest

from engagement.domain.errors import GatewayError
from engagement.infra import mailer as mailer_module
from engagement.infra.gateway import ChatMessage, HttpChatGateway, HttpPushGateway
from engagement.infra.mailer import SmtpMailer
from engagement.infra.statistics_client import HttpStatisticsTrigger, LocalStatisticsTrigger
from engagement.settings import Settings
from engagement.workers.pool import BackgroundTaskPool


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_chat_gateway_posts_items_with_api_key():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"ok": True})

    async with _client(handler) as http:
        gateway = HttpChatGateway(http, "https://bot.example/send", api_key="k-1")
        await gateway.send([ChatMessage([11, 22], "Soon!", "Reminder text", "https://img")])

    assert len(seen) == 1
    assert seen[0].headers["X-API-Key"] == "k-1"
    assert json.loads(seen[0].content) == {
        "items": [{"telegramIds": [11, 22], "imageUrl": "https://img", "title": "Soon!", "text": "Reminder text"}]
    }


@pytest.mark.asyncio
async def test_chat_gateway_non_success_raises():
    async with _client(lambda request: httpx.Response(502, text="bad gateway")) as http:
        gateway = HttpChatGateway(http, "https://bot.example/send")
        with pytest.raises(GatewayError) as excinfo:
            await gateway.send([ChatMessage([1], "t", "x")])
    assert excinfo.value.reason == "chat_status_502"


@pytest.mark.asyncio
async def test_chat_gateway_timeout_raises():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    async with _client(handler) as http:
        with pytest.raises(GatewayError):
            await HttpChatGateway(http, "https://bot.example/send").send([ChatMessage([1], "t", "x")])


@pytest.mark.asyncio
async def test_push_gateway_reports_invalid_tokens():
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert body["tokens"] == ["a", "b", "c"]
        assert body["data"] == {"session_id": "4"}
        return httpx.Response(200, json={"invalid_tokens": ["b"]})

    async with _client(handler) as http:
        result = await HttpPushGateway(http, "https://push.example").send(
            ["a", "b", "c"], title="T", body="B", data={"session_id": "4"}
        )

    assert result.delivered == 2
    assert result.invalid_tokens == ["b"]


@pytest.mark.asyncio
async def test_unconfigured_gateways_are_skipped():
    def handler(request):  # pragma: no cover - must not be called
        raise AssertionError("unexpected request")

    async with _client(handler) as http:
        await HttpChatGateway(http, "").send([ChatMessage([1], "t", "x")])
        result = await HttpPushGateway(http, "").send(["a"], title="t", body="b")
    assert result.delivered == 0


@pytest.mark.asyncio
async def test_http_statistics_trigger_sends_token():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        status = 200 if json.loads(request.content)["session_id"] == 1 else 409
        return httpx.Response(status, json={"status": "ok"})

    async with _client(handler) as http:
        trigger = HttpStatisticsTrigger(http, "http://api/internal/update-statistics", "secret")
        assert await trigger.trigger(1) is True
        assert await trigger.trigger(2) is False

    assert seen[0].headers["X-Internal-Token"] == "secret"


@pytest.mark.asyncio
async def test_local_statistics_trigger_runs_on_pool():
    processed: list[int] = []

    class _Aggregator:
        async def process(self, session_id, now=None):
            processed.append(session_id)
            return "processed"

    pool = BackgroundTaskPool(workers=1, queue_size=4)
    trigger = LocalStatisticsTrigger(_Aggregator(), pool)

    assert await trigger.trigger(5) is True
    assert await trigger.trigger(5) is False
    pool.start()
    await pool.join()
    await pool.stop()

    assert processed == [5]


@pytest.mark.asyncio
async def test_smtp_mailer_builds_html_message(monkeypatch):
    sent = {}

    async def fake_send(message, **kwargs):
        sent["message"] = message
        sent["kwargs"] = kwargs

    monkeypatch.setattr(mailer_module.aiosmtplib, "send", fake_send)
    config = Settings(smtp_host="smtp.example", smtp_port=587, smtp_tls=True, smtp_from_email="noreply@example.com")

    delivered = await SmtpMailer(config).send("owner@example.com", "Hello", "<p>hi</p>")

    assert delivered is True
    assert sent["message"]["To"] == "owner@example.com"
    assert sent["message"].get_content_subtype() == "html"
    assert sent["kwargs"]["start_tls"] is True
    assert sent["kwargs"]["use_tls"] is False


@pytest.mark.asyncio
async def test_smtp_mailer_skips_without_host():
    config = Settings(smtp_host="")
    assert await SmtpMailer(config).send("owner@example.com", "Hello", "<p>hi</p>") is False
