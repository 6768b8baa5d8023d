from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from guest_messaging.domain.entities.queue_item import QueueItem, QueueItemId
from guest_messaging.domain.value_objects.enums import Priority


class QueueStore(Protocol):
    async def insert(
        self,
        recipient: str,
        payload: dict[str, Any] | None,
        priority: Priority = Priority.NORMAL,
        *,
        max_retries: int = 3,
        scheduled_at: datetime | None = None,
    ) -> QueueItemId: ...

    async def get(self, item_id: QueueItemId) -> QueueItem | None: ...

    async def claim_next_batch(self, limit: int, now: datetime) -> list[QueueItem]:
        """Move up to ``limit`` due pending items to processing and return them.

        Highest priority first, oldest first within a tier. An item is
        returned to at most one caller.
        """
        ...

    # The settling transitions below only apply to a processing item. Given
    # ``claimed_at`` they also require that claim to still hold the item and
    # raise LeaseLostError otherwise.

    async def mark_completed(self, item_id: QueueItemId, *, claimed_at: datetime | None = None) -> QueueItem: ...

    async def mark_failed_attempt(
        self,
        item_id: QueueItemId,
        error_message: str,
        backoff_seconds: float,
        *,
        claimed_at: datetime | None = None,
    ) -> QueueItem: ...

    async def mark_failed_permanently(
        self,
        item_id: QueueItemId,
        error_message: str,
        *,
        claimed_at: datetime | None = None,
    ) -> QueueItem: ...

    async def defer(
        self,
        item_id: QueueItemId,
        until: datetime,
        *,
        claimed_at: datetime | None = None,
    ) -> QueueItem: ...

    async def release_stale(self, older_than: datetime) -> int: ...

    async def stats(self) -> dict[str, int]: ...

    async def purge_finished(self, older_than: datetime) -> int: ...
