"""One-time script: create the message_queue and rate_limits tables."""
from __future__ import annotations

import asyncio
import logging

import guest_messaging.infrastructure.db.models  # noqa: F401  registers tables
from guest_messaging.infrastructure.db.base import Base
from guest_messaging.infrastructure.db.session import engine

logger = logging.getLogger(__name__)


async def init_db() -> None:
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Created tables: %s", ", ".join(sorted(Base.metadata.tables)))
    finally:
        await engine.dispose()


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    asyncio.run(init_db())


if __name__ == "__main__":
    main()
