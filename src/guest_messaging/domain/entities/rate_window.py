from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class RateWindow:
    recipient: str
    window_start: datetime
    window_end: datetime
    message_count: int

    def is_active(self, now: datetime) -> bool:
        return self.window_start <= now < self.window_end

    def is_exhausted(self, now: datetime, limit: int) -> bool:
        return self.is_active(now) and self.message_count >= limit
