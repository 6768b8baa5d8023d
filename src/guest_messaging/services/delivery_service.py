from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta

from guest_messaging.application.exceptions import LeaseLostError, PermanentDeliveryError
from guest_messaging.application.policies.backoff import backoff_seconds
from guest_messaging.application.ports.clock import Clock
from guest_messaging.application.ports.provider import ProviderClient
from guest_messaging.application.uow import UnitOfWork
from guest_messaging.config import settings
from guest_messaging.domain.entities.queue_item import QueueItem
from guest_messaging.domain.value_objects.enums import DeliveryOutcome, QueueStatus

logger = logging.getLogger(__name__)


def _describe(exc: BaseException, send_timeout: float) -> str:
    if isinstance(exc, TimeoutError):
        return f"Provider send timed out after {send_timeout:g}s"
    return str(exc) or exc.__class__.__name__


async def deliver(
    item: QueueItem,
    uow: UnitOfWork,
    provider: ProviderClient,
    clock: Clock,
    *,
    backoff_base: float | None = None,
    defer_seconds: float | None = None,
    send_timeout: float | None = None,
) -> DeliveryOutcome:
    """Try to send one claimed (processing) item and record the result.

    Provider failures are recorded on the item and never raised. Store
    failures propagate to the caller. If the claim was released and the item
    taken by someone else meanwhile, the result is dropped and the item is
    left to its current holder.
    """
    backoff_base = settings.QUEUE_BACKOFF_BASE_SECONDS if backoff_base is None else backoff_base
    defer_seconds = settings.QUEUE_RATE_LIMIT_DEFER_SECONDS if defer_seconds is None else defer_seconds
    send_timeout = settings.QUEUE_SEND_TIMEOUT_SECONDS if send_timeout is None else send_timeout

    now = clock.now()
    admitted = await uow.rate_limits.admit(item.recipient, now)
    await uow.commit()

    try:
        return await _send_and_settle(item, uow, provider, now, backoff_base, defer_seconds, send_timeout, admitted)
    except LeaseLostError as exc:
        await uow.rollback()
        logger.warning("Dropping result for item %s, claim no longer held: %s", item.id, exc)
        return DeliveryOutcome.LEASE_LOST


async def _send_and_settle(
    item: QueueItem,
    uow: UnitOfWork,
    provider: ProviderClient,
    now: datetime,
    backoff_base: float,
    defer_seconds: float,
    send_timeout: float,
    admitted: bool,
) -> DeliveryOutcome:
    lease = item.claimed_at

    if not admitted:
        until = now + timedelta(seconds=defer_seconds)
        await uow.queue.defer(item.id, until, claimed_at=lease)
        await uow.commit()
        logger.info("Rate limit reached for %s, item %s deferred until %s", item.recipient, item.id, until.isoformat())
        return DeliveryOutcome.DEFERRED

    try:
        async with asyncio.timeout(send_timeout):
            result = await provider.send_message(item.recipient, item.payload)
    except PermanentDeliveryError as exc:
        await uow.queue.mark_failed_permanently(item.id, str(exc), claimed_at=lease)
        await uow.commit()
        logger.error("Item %s failed permanently: %s", item.id, exc)
        return DeliveryOutcome.FAILED
    except Exception as exc:  # noqa: BLE001
        error = _describe(exc, send_timeout)
        delay = backoff_seconds(item.attempt + 1, backoff_base)
        updated = await uow.queue.mark_failed_attempt(item.id, error, delay, claimed_at=lease)
        await uow.commit()
        if updated.status == QueueStatus.FAILED:
            logger.error("Item %s failed after %d attempts: %s", item.id, updated.attempt, error)
            return DeliveryOutcome.FAILED
        logger.warning(
            "Item %s attempt %d failed, retrying in %.0fs: %s",
            item.id, updated.attempt, delay, error,
        )
        return DeliveryOutcome.RETRY_SCHEDULED

    await uow.queue.mark_completed(item.id, claimed_at=lease)
    await uow.commit()
    logger.info("Item %s delivered to %s (provider id %s)", item.id, item.recipient, result.message_id)
    return DeliveryOutcome.COMPLETED
