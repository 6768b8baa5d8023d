from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from guest_messaging.domain.value_objects.enums import Priority, QueueStatus


class EnqueueMessageRequest(BaseModel):
    recipient: str = Field(min_length=1, max_length=32)
    payload: dict[str, Any]
    priority: Priority = Priority.NORMAL
    scheduled_at: datetime | None = None


class EnqueueMessageResponse(BaseModel):
    id: UUID
    status: QueueStatus = QueueStatus.PENDING


class QueueItemResponse(BaseModel):
    id: UUID
    recipient: str
    payload: dict[str, Any]
    priority: Priority
    status: QueueStatus
    attempt: int
    max_retries: int
    scheduled_at: datetime
    claimed_at: datetime | None
    created_at: datetime
    updated_at: datetime
    error: str | None

    model_config = {"from_attributes": True}


class QueueStatsResponse(BaseModel):
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
