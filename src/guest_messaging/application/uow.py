from __future__ import annotations

from typing import Protocol

from guest_messaging.application.repositories.queue import QueueStore
from guest_messaging.application.repositories.rate_limit import RateLimiter


class UnitOfWork(Protocol):
    """Queue and rate-limit stores sharing one database transaction.

    Services commit after every state change so that locks are never held
    across a provider call.
    """

    queue: QueueStore
    rate_limits: RateLimiter

    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...
