"""WAHA (WhatsApp HTTP API) gateway client."""
from __future__ import annotations

import hmac
import logging
from typing import Any

import httpx

from guest_messaging.application.exceptions import (
    InvalidPayloadError,
    InvalidRecipientError,
    NetworkError,
    ProviderError,
    ProviderRejectedError,
)
from guest_messaging.application.policies.recipients import is_valid_phone_number, to_chat_id
from guest_messaging.application.ports.provider import SendResult
from guest_messaging.config import settings

logger = logging.getLogger(__name__)

# 4xx answers that may go away on their own.
_RETRYABLE_STATUSES = frozenset({408, 425, 429})


def _require(section: dict[str, Any], key: str, kind: str) -> Any:
    value = section.get(key)
    if value in (None, ""):
        raise InvalidPayloadError(f"{kind} message requires '{key}'")
    return value


def _section(payload: dict[str, Any], kind: str) -> dict[str, Any]:
    section = payload.get(kind)
    if not isinstance(section, dict):
        raise InvalidPayloadError(f"{kind} message requires a '{kind}' object")
    return section


def _text(payload: dict[str, Any]) -> tuple[str, dict[str, Any]]:
    section = _section(payload, "text")
    return "/api/sendText", {"text": _require(section, "body", "text")}


def _image(payload: dict[str, Any]) -> tuple[str, dict[str, Any]]:
    section = _section(payload, "image")
    return "/api/sendImage", {
        "file": {"url": _require(section, "url", "image")},
        "caption": section.get("caption"),
    }


def _document(payload: dict[str, Any]) -> tuple[str, dict[str, Any]]:
    section = _section(payload, "document")
    return "/api/sendFile", {
        "file": {"url": _require(section, "url", "document")},
        "filename": section.get("filename"),
        "caption": section.get("caption"),
    }


def _voice(payload: dict[str, Any]) -> tuple[str, dict[str, Any]]:
    section = _section(payload, "voice")
    if section.get("url"):
        file: dict[str, Any] = {"url": section["url"]}
    else:
        file = {
            "data": _require(section, "data", "voice"),
            "mimetype": section.get("mimetype", "audio/mp3"),
            "filename": section.get("filename", "voice.mp3"),
        }
    return "/api/sendVoice", {"file": file}


def _location(payload: dict[str, Any]) -> tuple[str, dict[str, Any]]:
    section = _section(payload, "location")
    return "/api/sendLocation", {
        "latitude": _require(section, "latitude", "location"),
        "longitude": _require(section, "longitude", "location"),
        "title": section.get("title"),
        "address": section.get("address"),
    }


def _buttons(payload: dict[str, Any]) -> tuple[str, dict[str, Any]]:
    section = _section(payload, "buttons")
    buttons = section.get("buttons")
    if not isinstance(buttons, list) or not buttons:
        raise InvalidPayloadError("buttons message requires a non-empty 'buttons' list")
    if not all(isinstance(b, dict) for b in buttons):
        raise InvalidPayloadError("each button must be an object with 'id' and 'text'")
    return "/api/sendButtons", {
        "text": _require(section, "text", "buttons"),
        "buttons": [
            {"id": _require(b, "id", "button"), "text": _require(b, "text", "button")}
            for b in buttons
        ],
    }


_BUILDERS = {
    "text": _text,
    "image": _image,
    "document": _document,
    "voice": _voice,
    "location": _location,
    "buttons": _buttons,
}


class WahaClient:
    """Implements application.ports.provider.ProviderClient."""

    def __init__(
        self,
        base_url: str,
        *,
        session_name: str = "default",
        api_key: str | None = None,
        webhook_token: str = "",
        webhook_url: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["X-Api-Key"] = api_key
        self._session_name = session_name
        self._webhook_token = webhook_token
        self._webhook_url = webhook_url
        self._http = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls) -> WahaClient:
        return cls(
            settings.WAHA_API_URL,
            session_name=settings.WAHA_SESSION_NAME,
            api_key=settings.WAHA_API_KEY,
            webhook_token=settings.WAHA_WEBHOOK_TOKEN,
            webhook_url=settings.WAHA_WEBHOOK_URL,
            timeout=settings.WAHA_TIMEOUT_SECONDS,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    def verify_webhook_token(self, token: str | None) -> bool:
        if not token or not self._webhook_token:
            return False
        return hmac.compare_digest(token, self._webhook_token)

    async def send_message(self, recipient: str, payload: dict[str, Any]) -> SendResult:
        if not is_valid_phone_number(recipient):
            raise InvalidRecipientError(f"Not a valid WhatsApp number: {recipient!r}")

        kind = payload.get("type", "text")
        builder = _BUILDERS.get(kind)
        if builder is None:
            raise InvalidPayloadError(f"Unsupported message type: {kind!r}")
        path, body = builder(payload)

        data = await self._request(
            "POST",
            path,
            json={"session": self._session_name, "chatId": to_chat_id(recipient), **body},
        )
        message_id = data.get("id") if isinstance(data, dict) else None
        if isinstance(message_id, dict):
            message_id = message_id.get("_serialized")
        return SendResult(message_id=str(message_id) if message_id is not None else None)

    async def start_session(self) -> dict[str, Any]:
        config: dict[str, Any] = {}
        if self._webhook_url:
            config["webhooks"] = [
                {
                    "url": self._webhook_url,
                    "events": ["message", "message.any"],
                    "hmac": None,
                    "retries": 3,
                    "customHeaders": [
                        {"name": "X-Webhook-Token", "value": self._webhook_token},
                    ],
                },
            ]
        return await self._request(
            "POST",
            "/api/sessions/start",
            json={"name": self._session_name, "config": config},
        )

    async def get_session_status(self) -> dict[str, Any]:
        return await self._request("GET", f"/api/sessions/{self._session_name}")

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            raise NetworkError(f"WAHA {method} {path} timed out") from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"WAHA {method} {path} failed: {exc}") from exc

        logger.debug("WAHA %s %s -> %d", method, path, response.status_code)

        status = response.status_code
        if status >= 400:
            detail = f"WAHA {method} {path} returned HTTP {status}: {response.text[:200]}"
            if status >= 500 or status in _RETRYABLE_STATUSES:
                raise ProviderError(status, detail)
            raise ProviderRejectedError(status, detail)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {}
