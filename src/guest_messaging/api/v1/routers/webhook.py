from __future__ import annotations

import logging

from fastapi import APIRouter, Header, HTTPException, Query, status
from pydantic import ValidationError as PydanticValidationError

from guest_messaging.api.deps import WahaDep
from guest_messaging.api.v1.schemas.webhook import WahaMessagePayload, WahaWebhookEvent, WebhookAck

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/whatsapp", tags=["webhook"])

_MESSAGE_EVENTS = frozenset({"message", "message.any"})


@router.post("/webhook", response_model=WebhookAck)
async def receive_webhook(
    event: WahaWebhookEvent,
    waha: WahaDep,
    token: str | None = Query(None),
    x_webhook_token: str | None = Header(None),
) -> WebhookAck:
    if not waha.verify_webhook_token(x_webhook_token or token):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook token")

    if event.event not in _MESSAGE_EVENTS or not event.payload:
        logger.debug("Ignoring WAHA event %s", event.event)
        return WebhookAck()

    try:
        message = WahaMessagePayload.model_validate(event.payload)
    except PydanticValidationError:
        logger.warning("Malformed WAHA message payload on session %s", event.session)
        return WebhookAck(message="Webhook received, payload ignored")

    if message.from_me:
        return WebhookAck()

    logger.info(
        "Inbound WhatsApp %s message %s from %s (media=%s)",
        message.type,
        message.id,
        message.from_,
        message.has_media,
    )
    return WebhookAck()
