from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from guest_messaging.application.exceptions import LeaseLostError, NotFoundError, ValidationError
from guest_messaging.application.ports.clock import Clock, SystemClock
from guest_messaging.domain.entities.queue_item import QueueItem, QueueItemId
from guest_messaging.domain.value_objects.enums import Priority, QueueStatus
from guest_messaging.infrastructure.db.errors import store_errors, ts
from guest_messaging.infrastructure.db.mappers import queue_item as mapper
from guest_messaging.infrastructure.db.models.queue_item import QueueItemModel

_t = QueueItemModel.__table__

_PRIORITY_RANK = case(
    {p.value: p.rank for p in Priority},
    value=_t.c.priority,
    else_=0,
)

LEASE_EXPIRED_ERROR = "processing lease expired"


class QueueRepo:
    """Durable message queue on the ``message_queue`` table.

    Every state transition is a single conditional UPDATE ... RETURNING so
    that concurrent workers coordinate through the database alone.
    """

    def __init__(self, session: AsyncSession, clock: Clock | None = None) -> None:
        self._session = session
        self._clock = clock or SystemClock()

    async def insert(
        self,
        recipient: str,
        payload: dict[str, Any] | None,
        priority: Priority = Priority.NORMAL,
        *,
        max_retries: int = 3,
        scheduled_at: datetime | None = None,
    ) -> QueueItemId:
        if not recipient or not recipient.strip():
            raise ValidationError("recipient must not be empty")
        if not payload:
            raise ValidationError("payload is required")
        if max_retries < 1:
            raise ValidationError("max_retries must be at least 1")

        now = self._clock.now()
        model = QueueItemModel(
            id=uuid.uuid4(),
            recipient=recipient,
            payload=payload,
            priority=Priority(priority).value,
            status=QueueStatus.PENDING.value,
            attempt=0,
            max_retries=max_retries,
            scheduled_at=scheduled_at or now,
            created_at=now,
            updated_at=now,
        )
        self._session.add(model)
        with store_errors("enqueue"):
            await self._session.flush()
        return QueueItemId(model.id)

    async def get(self, item_id: QueueItemId) -> QueueItem | None:
        with store_errors("load queue item"):
            result = await self._session.execute(select(_t).where(_t.c.id == item_id))
            row = result.mappings().first()
        return mapper.row_to_entity(row) if row else None

    async def claim_next_batch(self, limit: int, now: datetime) -> list[QueueItem]:
        if limit <= 0:
            return []
        due = (
            select(_t.c.id)
            .where(
                _t.c.status == QueueStatus.PENDING,
                _t.c.scheduled_at <= now,
            )
            .order_by(_PRIORITY_RANK.desc(), _t.c.created_at.asc(), _t.c.id.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
            .correlate(None)
        )
        # Re-checking status makes the claim safe where SKIP LOCKED is not
        # available: a row already taken no longer matches.
        stmt = (
            update(_t)
            .where(_t.c.id.in_(due), _t.c.status == QueueStatus.PENDING)
            .values(
                status=QueueStatus.PROCESSING,
                claimed_at=now,
                updated_at=now,
            )
            .returning(*_t.c)
        )
        with store_errors("claim"):
            result = await self._session.execute(stmt)
            rows = result.mappings().all()

        items = [mapper.row_to_entity(r) for r in rows]
        items.sort(key=lambda i: (-i.priority.rank, i.created_at, i.id))
        return items

    async def mark_completed(self, item_id: QueueItemId, *, claimed_at: datetime | None = None) -> QueueItem:
        now = self._clock.now()
        return await self._transition(
            item_id,
            claimed_at,
            "mark completed",
            status=QueueStatus.COMPLETED,
            claimed_at=None,
            updated_at=now,
        )

    async def mark_failed_attempt(
        self,
        item_id: QueueItemId,
        error_message: str,
        backoff_seconds: float,
        *,
        claimed_at: datetime | None = None,
    ) -> QueueItem:
        now = self._clock.now()
        # SET expressions see the pre-update row, so attempt + 1 is the new count.
        next_attempt = _t.c.attempt + 1
        retry = next_attempt < _t.c.max_retries
        return await self._transition(
            item_id,
            claimed_at,
            "record failed attempt",
            attempt=next_attempt,
            status=case(
                (retry, QueueStatus.PENDING.value),
                else_=QueueStatus.FAILED.value,
            ),
            scheduled_at=case(
                (retry, ts(now + timedelta(seconds=backoff_seconds))),
                else_=_t.c.scheduled_at,
            ),
            claimed_at=None,
            error=error_message,
            updated_at=now,
        )

    async def mark_failed_permanently(
        self,
        item_id: QueueItemId,
        error_message: str,
        *,
        claimed_at: datetime | None = None,
    ) -> QueueItem:
        now = self._clock.now()
        return await self._transition(
            item_id,
            claimed_at,
            "mark failed",
            attempt=_t.c.attempt + 1,
            status=QueueStatus.FAILED,
            claimed_at=None,
            error=error_message,
            updated_at=now,
        )

    async def defer(
        self,
        item_id: QueueItemId,
        until: datetime,
        *,
        claimed_at: datetime | None = None,
    ) -> QueueItem:
        now = self._clock.now()
        return await self._transition(
            item_id,
            claimed_at,
            "defer",
            status=QueueStatus.PENDING,
            scheduled_at=until,
            claimed_at=None,
            updated_at=now,
        )

    async def release_stale(self, older_than: datetime) -> int:
        now = self._clock.now()
        stmt = (
            update(_t)
            .where(
                _t.c.status == QueueStatus.PROCESSING,
                _t.c.claimed_at < older_than,
            )
            .values(
                status=QueueStatus.PENDING,
                claimed_at=None,
                error=LEASE_EXPIRED_ERROR,
                updated_at=now,
            )
        )
        with store_errors("release stale items"):
            result = await self._session.execute(stmt)
        return result.rowcount or 0

    async def stats(self) -> dict[str, int]:
        counts = {status.value: 0 for status in QueueStatus}
        stmt = select(_t.c.status, func.count()).group_by(_t.c.status)
        with store_errors("queue stats"):
            result = await self._session.execute(stmt)
            for status, count in result.all():
                counts[status] = count
        return counts

    async def purge_finished(self, older_than: datetime) -> int:
        stmt = delete(_t).where(
            _t.c.status.in_([QueueStatus.COMPLETED, QueueStatus.FAILED]),
            _t.c.updated_at < older_than,
        )
        with store_errors("purge finished items"):
            result = await self._session.execute(stmt)
        return result.rowcount or 0

    async def _transition(
        self,
        item_id: QueueItemId,
        lease: datetime | None,
        action: str,
        **values: Any,
    ) -> QueueItem:
        """Settle a processing item. With a ``lease`` only the claim stamped at that time may settle it."""
        conditions = [_t.c.id == item_id, _t.c.status == QueueStatus.PROCESSING]
        if lease is not None:
            conditions.append(_t.c.claimed_at == lease)
        stmt = update(_t).where(*conditions).values(**values).returning(*_t.c)
        with store_errors(action):
            result = await self._session.execute(stmt)
            row = result.mappings().first()
        if row is not None:
            return mapper.row_to_entity(row)

        current = await self.get(item_id)
        if current is None:
            raise NotFoundError(f"Queue item {item_id} not found")
        raise LeaseLostError(f"Queue item {item_id} is {current.status.value}, cannot {action}")
