from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from guest_messaging.application.ports.clock import as_utc
from guest_messaging.domain.entities.rate_window import RateWindow


def row_to_entity(row: Mapping[str, Any]) -> RateWindow:
    return RateWindow(
        recipient=row["recipient"],
        window_start=as_utc(row["window_start"]),
        window_end=as_utc(row["window_end"]),
        message_count=row["message_count"],
    )
