from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from guest_messaging.application.ports.clock import as_utc
from guest_messaging.domain.entities.queue_item import QueueItem, QueueItemId
from guest_messaging.domain.value_objects.enums import Priority, QueueStatus


def row_to_entity(row: Mapping[str, Any]) -> QueueItem:
    return QueueItem(
        id=QueueItemId(row["id"]),
        recipient=row["recipient"],
        payload=row["payload"],
        priority=Priority(row["priority"]),
        status=QueueStatus(row["status"]),
        attempt=row["attempt"],
        max_retries=row["max_retries"],
        scheduled_at=as_utc(row["scheduled_at"]),
        created_at=as_utc(row["created_at"]),
        updated_at=as_utc(row["updated_at"]),
        claimed_at=as_utc(row["claimed_at"]),
        error=row["error"],
    )
