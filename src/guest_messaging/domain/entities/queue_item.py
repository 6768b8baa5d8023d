from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, NewType
from uuid import UUID

from guest_messaging.domain.value_objects.enums import Priority, QueueStatus

QueueItemId = NewType("QueueItemId", UUID)


@dataclass(frozen=True, slots=True)
class QueueItem:
    id: QueueItemId
    recipient: str
    payload: dict[str, Any]
    priority: Priority
    status: QueueStatus
    attempt: int
    max_retries: int
    scheduled_at: datetime
    created_at: datetime
    updated_at: datetime
    claimed_at: datetime | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (QueueStatus.COMPLETED, QueueStatus.FAILED)
