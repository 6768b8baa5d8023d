from __future__ import annotations

import json

import httpx
import pytest

from guest_messaging.application.exceptions import (
    InvalidPayloadError,
    InvalidRecipientError,
    NetworkError,
    ProviderError,
    ProviderRejectedError,
)
from guest_messaging.infrastructure.waha.client import WahaClient


class Recorder:
    """MockTransport handler returning a canned response and keeping requests."""

    def __init__(self, status_code: int = 201, body: dict | None = None) -> None:
        self.status_code = status_code
        self.body = body if body is not None else {"id": {"_serialized": "true_14155550100@c.us_ABC"}}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.body)

    @property
    def last_json(self) -> dict:
        return json.loads(self.requests[-1].content)


def make_client(handler, **kwargs) -> WahaClient:
    return WahaClient(
        "http://waha.test",
        session_name="hotel",
        api_key="secret-key",
        webhook_token="hook-token",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_send_text_message():
    recorder = Recorder()
    client = make_client(recorder)

    result = await client.send_message("+1 415 555 0100", {"type": "text", "text": {"body": "Welcome!"}})

    request = recorder.requests[0]
    assert request.url.path == "/api/sendText"
    assert request.headers["X-Api-Key"] == "secret-key"
    assert recorder.last_json == {"session": "hotel", "chatId": "14155550100@c.us", "text": "Welcome!"}
    assert result.message_id == "true_14155550100@c.us_ABC"
    await client.aclose()


@pytest.mark.asyncio
async def test_payload_without_type_is_text():
    recorder = Recorder(body={"id": "wamid.1"})
    client = make_client(recorder)

    result = await client.send_message("14155550100", {"text": {"body": "hi"}})

    assert recorder.requests[0].url.path == "/api/sendText"
    assert result.message_id == "wamid.1"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("payload", "path", "expected"),
    [
        (
            {"type": "image", "image": {"url": "https://cdn.test/pool.jpg", "caption": "Pool"}},
            "/api/sendImage",
            {"file": {"url": "https://cdn.test/pool.jpg"}, "caption": "Pool"},
        ),
        (
            {"type": "document", "document": {"url": "https://cdn.test/invoice.pdf", "filename": "invoice.pdf"}},
            "/api/sendFile",
            {"file": {"url": "https://cdn.test/invoice.pdf"}, "filename": "invoice.pdf"},
        ),
        (
            {"type": "voice", "voice": {"data": "SUQz", "mimetype": "audio/ogg"}},
            "/api/sendVoice",
            {"file": {"data": "SUQz", "mimetype": "audio/ogg", "filename": "voice.mp3"}},
        ),
        (
            {"type": "location", "location": {"latitude": 41.38, "longitude": 2.17, "title": "Lobby"}},
            "/api/sendLocation",
            {"latitude": 41.38, "longitude": 2.17, "title": "Lobby"},
        ),
    ],
)
async def test_send_media_messages(payload, path, expected):
    recorder = Recorder()
    client = make_client(recorder)

    await client.send_message("34612345678", payload)

    assert recorder.requests[0].url.path == path
    body = recorder.last_json
    for key, value in expected.items():
        assert body[key] == value


@pytest.mark.asyncio
async def test_send_buttons_message():
    recorder = Recorder()
    client = make_client(recorder)
    payload = {
        "type": "buttons",
        "buttons": {
            "text": "How can we help?",
            "buttons": [
                {"id": "housekeeping", "text": "Housekeeping", "style": "ignored"},
                {"id": "late_checkout", "text": "Late checkout"},
            ],
        },
    }

    await client.send_message("14155550100", payload)

    assert recorder.requests[0].url.path == "/api/sendButtons"
    assert recorder.last_json == {
        "session": "hotel",
        "chatId": "14155550100@c.us",
        "text": "How can we help?",
        "buttons": [
            {"id": "housekeeping", "text": "Housekeeping"},
            {"id": "late_checkout", "text": "Late checkout"},
        ],
    }
    await client.aclose()


@pytest.mark.asyncio
async def test_invalid_recipient_fails_before_any_request():
    recorder = Recorder()
    client = make_client(recorder)

    with pytest.raises(InvalidRecipientError):
        await client.send_message("R1", {"type": "text", "text": {"body": "hi"}})

    assert recorder.requests == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"type": "sticker", "sticker": {}},
        {"type": "text", "text": {}},
        {"type": "image", "image": "https://cdn.test/pool.jpg"},
        {"type": "location", "location": {"latitude": 1.0}},
        {"type": "buttons", "buttons": {"text": "Pick one", "buttons": []}},
        {"type": "buttons", "buttons": {"text": "Pick one", "buttons": [{"id": "spa"}]}},
        {"type": "buttons", "buttons": {"buttons": [{"id": "spa", "text": "Spa"}]}},
    ],
)
async def test_malformed_payload_is_permanent(payload):
    recorder = Recorder()
    client = make_client(recorder)

    with pytest.raises(InvalidPayloadError):
        await client.send_message("14155550100", payload)

    assert recorder.requests == []


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [500, 502, 408, 429])
async def test_retryable_statuses_raise_provider_error(status_code):
    client = make_client(Recorder(status_code=status_code, body={"error": "busy"}))

    with pytest.raises(ProviderError) as exc_info:
        await client.send_message("14155550100", {"type": "text", "text": {"body": "hi"}})

    assert exc_info.value.status_code == status_code


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [400, 401, 404, 422])
async def test_client_errors_are_rejections(status_code):
    client = make_client(Recorder(status_code=status_code, body={"error": "bad"}))

    with pytest.raises(ProviderRejectedError) as exc_info:
        await client.send_message("14155550100", {"type": "text", "text": {"body": "hi"}})

    assert exc_info.value.status_code == status_code


@pytest.mark.asyncio
async def test_transport_failure_raises_network_error():
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(refuse)

    with pytest.raises(NetworkError):
        await client.send_message("14155550100", {"type": "text", "text": {"body": "hi"}})


@pytest.mark.asyncio
async def test_timeout_raises_network_error():
    def hang(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    client = make_client(hang)

    with pytest.raises(NetworkError, match="timed out"):
        await client.send_message("14155550100", {"type": "text", "text": {"body": "hi"}})


@pytest.mark.asyncio
async def test_start_session_registers_webhook():
    recorder = Recorder(body={"name": "hotel", "status": "STARTING"})
    client = make_client(recorder, webhook_url="https://bot.test/api/whatsapp/webhook")

    session = await client.start_session()

    assert session["status"] == "STARTING"
    body = recorder.last_json
    assert body["name"] == "hotel"
    webhook = body["config"]["webhooks"][0]
    assert webhook["url"] == "https://bot.test/api/whatsapp/webhook"
    assert {"name": "X-Webhook-Token", "value": "hook-token"} in webhook["customHeaders"]


def test_verify_webhook_token():
    client = make_client(Recorder())

    assert client.verify_webhook_token("hook-token") is True
    assert client.verify_webhook_token("wrong") is False
    assert client.verify_webhook_token(None) is False
