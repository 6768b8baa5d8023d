from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy import DateTime, literal
from sqlalchemy.exc import SQLAlchemyError

from guest_messaging.application.exceptions import StoreError


@contextmanager
def store_errors(action: str) -> Iterator[None]:
    """Re-raise driver / SQLAlchemy failures as StoreError."""
    try:
        yield
    except SQLAlchemyError as exc:
        raise StoreError(f"{action} failed: {exc}") from exc


def ts(value: datetime):
    """Timezone-aware timestamp bind for use inside SQL expressions."""
    return literal(value, DateTime(timezone=True))
