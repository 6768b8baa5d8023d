from __future__ import annotations

from types import TracebackType
from typing import Self

from sqlalchemy.ext.asyncio import AsyncSession

from guest_messaging.application.ports.clock import Clock
from guest_messaging.infrastructure.db.errors import store_errors
from guest_messaging.infrastructure.db.repositories.queue import QueueRepo
from guest_messaging.infrastructure.db.repositories.rate_limit import RateLimitRepo


class SqlAlchemyUoW:
    """Concrete Unit-of-Work backed by a single AsyncSession."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock | None = None,
        *,
        rate_limit: int | None = None,
        rate_window_seconds: int | None = None,
    ) -> None:
        self._session = session
        self.queue = QueueRepo(session, clock)
        self.rate_limits = RateLimitRepo(
            session, limit=rate_limit, window_seconds=rate_window_seconds,
        )

    async def commit(self) -> None:
        with store_errors("commit"):
            await self._session.commit()

    async def rollback(self) -> None:
        with store_errors("rollback"):
            await self._session.rollback()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            await self._session.rollback()
