from __future__ import annotations

from datetime import datetime
from typing import Protocol

from guest_messaging.domain.entities.rate_window import RateWindow


class RateLimiter(Protocol):
    async def admit(self, recipient: str, now: datetime) -> bool:
        """Count one send for ``recipient`` if its window has room. Atomic."""
        ...

    async def next_available_at(self, recipient: str, now: datetime) -> datetime | None:
        """End of the recipient's window if it is full, else None."""
        ...

    async def get_window(self, recipient: str) -> RateWindow | None: ...

    async def purge_expired(self, older_than: datetime) -> int: ...
