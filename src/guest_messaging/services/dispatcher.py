"""Public entry point for producers that want a WhatsApp message delivered."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from guest_messaging.application.exceptions import NotFoundError, ValidationError
from guest_messaging.application.policies.recipients import is_valid_phone_number, normalize_number
from guest_messaging.application.ports.clock import Clock, SystemClock, as_utc
from guest_messaging.application.uow import UnitOfWork
from guest_messaging.config import settings
from guest_messaging.domain.entities.queue_item import QueueItem, QueueItemId
from guest_messaging.domain.value_objects.enums import Priority

logger = logging.getLogger(__name__)


async def enqueue(
    recipient: str,
    payload: dict[str, Any] | None,
    uow: UnitOfWork,
    priority: Priority | str = Priority.NORMAL,
    *,
    scheduled_at: datetime | None = None,
    clock: Clock | None = None,
) -> QueueItemId:
    """Persist a message for asynchronous delivery and return its id.

    Does not wait for delivery. If the recipient's rate window is already
    full the item is scheduled for when the window ends.
    """
    if not recipient or not is_valid_phone_number(recipient):
        raise ValidationError(f"Invalid recipient phone number: {recipient!r}")
    try:
        priority = Priority(priority)
    except ValueError:
        raise ValidationError(f"Unknown priority: {priority!r}") from None

    number = normalize_number(recipient)
    now = (clock or SystemClock()).now()
    scheduled_at = as_utc(scheduled_at)

    not_before = await uow.rate_limits.next_available_at(number, now)
    if not_before is not None and (scheduled_at is None or scheduled_at < not_before):
        logger.info("Recipient %s is rate limited, scheduling for %s", number, not_before.isoformat())
        scheduled_at = not_before

    item_id = await uow.queue.insert(
        number,
        payload,
        priority,
        max_retries=settings.QUEUE_MAX_RETRIES,
        scheduled_at=scheduled_at,
    )
    await uow.commit()

    logger.info("Message %s enqueued for %s (priority=%s)", item_id, number, priority)
    return item_id


async def get_stats(uow: UnitOfWork) -> dict[str, int]:
    return await uow.queue.stats()


async def get_item(item_id: QueueItemId, uow: UnitOfWork) -> QueueItem:
    item = await uow.queue.get(item_id)
    if item is None:
        raise NotFoundError("Queue item not found")
    return item
