from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import case, delete, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from guest_messaging.application.exceptions import StoreError
from guest_messaging.config import settings
from guest_messaging.domain.entities.rate_window import RateWindow
from guest_messaging.infrastructure.db.errors import store_errors, ts
from guest_messaging.infrastructure.db.mappers import rate_window as mapper
from guest_messaging.infrastructure.db.models.rate_window import RateWindowModel

_t = RateWindowModel.__table__

_UPSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class RateLimitRepo:
    """Per-recipient rolling-window send counter on ``rate_limits``.

    A window opens at the first admitted send and lasts ``window_seconds``.
    Admission is one upsert whose conflict branch only fires while the
    window has room (or has elapsed), so concurrent callers cannot push the
    count past ``limit``.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        limit: int | None = None,
        window_seconds: int | None = None,
    ) -> None:
        self._session = session
        self._limit = settings.RATE_LIMIT_MAX_MESSAGES if limit is None else limit
        self._window = timedelta(
            seconds=settings.RATE_LIMIT_WINDOW_SECONDS if window_seconds is None else window_seconds
        )

    @property
    def limit(self) -> int:
        return self._limit

    async def admit(self, recipient: str, now: datetime) -> bool:
        if self._limit <= 0:
            return False

        window_end = now + self._window
        elapsed = _t.c.window_end <= ts(now)
        stmt = self._upsert()(_t).values(
            recipient=recipient,
            message_count=1,
            window_start=now,
            window_end=window_end,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[_t.c.recipient],
            set_={
                "window_start": case((elapsed, ts(now)), else_=_t.c.window_start),
                "window_end": case((elapsed, ts(window_end)), else_=_t.c.window_end),
                "message_count": case((elapsed, 1), else_=_t.c.message_count + 1),
                "updated_at": ts(now),
            },
            where=or_(elapsed, _t.c.message_count < self._limit),
        ).returning(_t.c.message_count)

        with store_errors("rate limit admit"):
            result = await self._session.execute(stmt)
            return result.first() is not None

    async def get_window(self, recipient: str) -> RateWindow | None:
        with store_errors("load rate window"):
            result = await self._session.execute(select(_t).where(_t.c.recipient == recipient))
            row = result.mappings().first()
        return mapper.row_to_entity(row) if row else None

    async def next_available_at(self, recipient: str, now: datetime) -> datetime | None:
        window = await self.get_window(recipient)
        if window is not None and window.is_exhausted(now, self._limit):
            return window.window_end
        return None

    async def purge_expired(self, older_than: datetime) -> int:
        with store_errors("purge rate windows"):
            result = await self._session.execute(delete(_t).where(_t.c.window_end < older_than))
        return result.rowcount or 0

    def _upsert(self):
        dialect = self._session.get_bind().dialect.name
        try:
            return _UPSERTS[dialect]
        except KeyError:
            raise StoreError(f"rate limiting needs an upsert-capable database, got {dialect}") from None
