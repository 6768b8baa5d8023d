"""Retention sweep: delete old finished queue rows and long-expired rate windows.

Meant to run from cron; the queue itself never deletes rows.
"""
from __future__ import annotations

import argparse
import asyncio
import logging
from datetime import timedelta

from guest_messaging.application.ports.clock import Clock, SystemClock
from guest_messaging.config import settings
from guest_messaging.infrastructure.db.session import AsyncSessionLocal
from guest_messaging.infrastructure.db.uow import SqlAlchemyUoW

logger = logging.getLogger(__name__)

RATE_WINDOW_GRACE = timedelta(days=1)


async def purge(uow: SqlAlchemyUoW, retention_days: int, clock: Clock | None = None) -> tuple[int, int]:
    now = (clock or SystemClock()).now()
    items = await uow.queue.purge_finished(now - timedelta(days=retention_days))
    windows = await uow.rate_limits.purge_expired(now - RATE_WINDOW_GRACE)
    await uow.commit()
    return items, windows


async def run(retention_days: int) -> None:
    async with AsyncSessionLocal() as session, SqlAlchemyUoW(session) as uow:
        items, windows = await purge(uow, retention_days)
    logger.info(
        "Purged %d finished queue items older than %d days and %d expired rate windows",
        items, retention_days, windows,
    )


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--retention-days",
        type=int,
        default=settings.QUEUE_RETENTION_DAYS,
        help="keep completed/failed items for this many days",
    )
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO)
    asyncio.run(run(args.retention_days))


if __name__ == "__main__":
    main()
