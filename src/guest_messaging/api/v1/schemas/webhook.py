from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class WahaMessagePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    from_: str = Field(alias="from")
    body: str | None = None
    type: str = "text"
    from_me: bool = Field(default=False, alias="fromMe")
    has_media: bool = Field(default=False, alias="hasMedia")
    timestamp: int | None = None


class WahaWebhookEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    event: str
    session: str | None = None
    payload: dict[str, Any] | None = None


class WebhookAck(BaseModel):
    success: bool = True
    message: str = "Webhook received"
