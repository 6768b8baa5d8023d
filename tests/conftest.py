"""Shared test fixtures."""
from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy import event

from guest_messaging.application.dto.principal import Principal
from guest_messaging.application.exceptions import LeaseLostError, NotFoundError
from guest_messaging.application.ports.provider import SendResult
from guest_messaging.domain.entities.queue_item import QueueItem, QueueItemId
from guest_messaging.domain.value_objects.enums import Priority, PrincipalKind, QueueStatus
from guest_messaging.infrastructure.db.base import Base
from guest_messaging.infrastructure.db.session import build_engine, build_sessionmaker

import guest_messaging.infrastructure.db.models  # noqa: F401

T0 = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def service_principal() -> Principal:
    return Principal(kind=PrincipalKind.SERVICE, subject="concierge-bot", roles=[])


@pytest.fixture
def admin_principal() -> Principal:
    return Principal(kind=PrincipalKind.ADMIN, subject="ops", roles=["admin"])


@dataclass
class FakeClock:
    current: datetime = T0

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> datetime:
        self.current += timedelta(seconds=seconds)
        return self.current


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def text_payload(body: str = "Your room is ready") -> dict[str, Any]:
    return {"type": "text", "text": {"body": body}}


def make_item(
    *,
    item_id: uuid.UUID | None = None,
    recipient: str = "14155550100",
    payload: dict[str, Any] | None = None,
    priority: Priority = Priority.NORMAL,
    status: QueueStatus = QueueStatus.PROCESSING,
    attempt: int = 0,
    max_retries: int = 3,
    created_at: datetime = T0,
) -> QueueItem:
    return QueueItem(
        id=QueueItemId(item_id or uuid.uuid4()),
        recipient=recipient,
        payload=payload or text_payload(),
        priority=priority,
        status=status,
        attempt=attempt,
        max_retries=max_retries,
        scheduled_at=created_at,
        created_at=created_at,
        updated_at=created_at,
        claimed_at=created_at if status == QueueStatus.PROCESSING else None,
    )


@dataclass
class FakeProvider:
    """Scripted provider: each send consumes the next outcome.

    An outcome is an exception instance (raised), a number (seconds to hang
    before succeeding) or None (immediate success).
    """

    outcomes: list[Any] = field(default_factory=list)
    sent: list[tuple[str, dict[str, Any]]] = field(default_factory=list)

    async def send_message(self, recipient: str, payload: dict[str, Any]) -> SendResult:
        self.sent.append((recipient, payload))
        outcome = self.outcomes.pop(0) if self.outcomes else None
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, (int, float)):
            await asyncio.sleep(outcome)
        return SendResult(message_id=f"wamid.{len(self.sent)}")


@dataclass
class FakeQueueStore:
    clock: FakeClock = field(default_factory=FakeClock)
    _items: dict[QueueItemId, QueueItem] = field(default_factory=dict)

    def add(self, item: QueueItem) -> QueueItem:
        self._items[item.id] = item
        return item

    async def insert(
        self,
        recipient: str,
        payload: dict[str, Any] | None,
        priority: Priority = Priority.NORMAL,
        *,
        max_retries: int = 3,
        scheduled_at: datetime | None = None,
    ) -> QueueItemId:
        now = self.clock.now()
        item = QueueItem(
            id=QueueItemId(uuid.uuid4()),
            recipient=recipient,
            payload=payload or {},
            priority=Priority(priority),
            status=QueueStatus.PENDING,
            attempt=0,
            max_retries=max_retries,
            scheduled_at=scheduled_at or now,
            created_at=now,
            updated_at=now,
        )
        self._items[item.id] = item
        return item.id

    async def get(self, item_id: QueueItemId) -> QueueItem | None:
        return self._items.get(item_id)

    async def claim_next_batch(self, limit: int, now: datetime) -> list[QueueItem]:
        due = sorted(
            (i for i in self._items.values() if i.status == QueueStatus.PENDING and i.scheduled_at <= now),
            key=lambda i: (-i.priority.rank, i.created_at),
        )[:limit]
        return [self._update(i.id, status=QueueStatus.PROCESSING, claimed_at=now) for i in due]

    async def mark_completed(self, item_id: QueueItemId, *, claimed_at: datetime | None = None) -> QueueItem:
        self._settling(item_id, claimed_at)
        return self._update(item_id, status=QueueStatus.COMPLETED, claimed_at=None)

    async def mark_failed_attempt(
        self, item_id: QueueItemId, error_message: str, backoff_seconds: float, *, claimed_at: datetime | None = None,
    ) -> QueueItem:
        item = self._settling(item_id, claimed_at)
        attempt = item.attempt + 1
        if attempt < item.max_retries:
            return self._update(
                item_id,
                attempt=attempt,
                status=QueueStatus.PENDING,
                scheduled_at=self.clock.now() + timedelta(seconds=backoff_seconds),
                claimed_at=None,
                error=error_message,
            )
        return self._update(item_id, attempt=attempt, status=QueueStatus.FAILED, claimed_at=None, error=error_message)

    async def mark_failed_permanently(
        self, item_id: QueueItemId, error_message: str, *, claimed_at: datetime | None = None,
    ) -> QueueItem:
        item = self._settling(item_id, claimed_at)
        return self._update(
            item_id, attempt=item.attempt + 1, status=QueueStatus.FAILED, claimed_at=None, error=error_message,
        )

    async def defer(self, item_id: QueueItemId, until: datetime, *, claimed_at: datetime | None = None) -> QueueItem:
        self._settling(item_id, claimed_at)
        return self._update(item_id, status=QueueStatus.PENDING, scheduled_at=until, claimed_at=None)

    async def release_stale(self, older_than: datetime) -> int:
        stale = [
            i for i in self._items.values()
            if i.status == QueueStatus.PROCESSING and i.claimed_at is not None and i.claimed_at < older_than
        ]
        for i in stale:
            self._update(i.id, status=QueueStatus.PENDING, claimed_at=None)
        return len(stale)

    async def stats(self) -> dict[str, int]:
        counts = {s.value: 0 for s in QueueStatus}
        for i in self._items.values():
            counts[i.status.value] += 1
        return counts

    async def purge_finished(self, older_than: datetime) -> int:
        doomed = [i.id for i in self._items.values() if i.is_terminal and i.updated_at < older_than]
        for item_id in doomed:
            del self._items[item_id]
        return len(doomed)

    def _get(self, item_id: QueueItemId) -> QueueItem:
        try:
            return self._items[item_id]
        except KeyError:
            raise NotFoundError(f"Queue item {item_id} not found") from None

    def _settling(self, item_id: QueueItemId, claimed_at: datetime | None) -> QueueItem:
        item = self._get(item_id)
        if item.status != QueueStatus.PROCESSING or (claimed_at is not None and item.claimed_at != claimed_at):
            raise LeaseLostError(f"Queue item {item_id} is {item.status.value}")
        return item

    def _update(self, item_id: QueueItemId, **changes: Any) -> QueueItem:
        item = replace(self._get(item_id), updated_at=self.clock.now(), **changes)
        self._items[item_id] = item
        return item


@dataclass
class FakeRateLimiter:
    """Admits until ``denied`` names the recipient; reports ``full_until`` windows."""

    denied: set[str] = field(default_factory=set)
    full_until: dict[str, datetime] = field(default_factory=dict)
    admitted: list[str] = field(default_factory=list)

    async def admit(self, recipient: str, now: datetime) -> bool:
        if recipient in self.denied:
            return False
        self.admitted.append(recipient)
        return True

    async def next_available_at(self, recipient: str, now: datetime) -> datetime | None:
        until = self.full_until.get(recipient)
        return until if until is not None and until > now else None

    async def get_window(self, recipient: str):
        return None

    async def purge_expired(self, older_than: datetime) -> int:
        return 0


@dataclass
class FakeUoW:
    """In-memory UoW for unit tests."""
    clock: FakeClock = field(default_factory=FakeClock)
    queue: FakeQueueStore | None = None
    rate_limits: FakeRateLimiter = field(default_factory=FakeRateLimiter)
    commits: int = 0
    rollbacks: int = 0

    def __post_init__(self) -> None:
        if self.queue is None:
            self.queue = FakeQueueStore(self.clock)

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1


# -- SQLite-backed store ---------------------------------------------------


@pytest_asyncio.fixture
async def sqlite_engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'queue.db'}")

    # Take the write lock when the transaction starts so concurrent sessions
    # queue up on the busy timeout instead of failing mid-transaction.
    @event.listens_for(engine.sync_engine, "connect")
    def _autocommit_driver(dbapi_connection, _record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(sqlite_engine):
    return build_sessionmaker(sqlite_engine)
