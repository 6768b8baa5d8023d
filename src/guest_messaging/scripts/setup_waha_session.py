"""One-time script: start the WAHA session and register the webhook."""
from __future__ import annotations

import asyncio
import logging

from guest_messaging.application.exceptions import ProviderRejectedError
from guest_messaging.config import settings
from guest_messaging.infrastructure.waha.client import WahaClient

logger = logging.getLogger(__name__)


async def setup_session() -> None:
    client = WahaClient.from_settings()
    try:
        try:
            session = await client.start_session()
            logger.info("Started WAHA session '%s'", settings.WAHA_SESSION_NAME)
        except ProviderRejectedError as e:
            if e.status_code != 422:
                raise
            logger.info("WAHA session '%s' already exists", settings.WAHA_SESSION_NAME)
            session = await client.get_session_status()
        logger.info("Session status: %s", session.get("status", "unknown"))
        if session.get("status") == "SCAN_QR_CODE":
            logger.info("Scan the QR code in the WAHA dashboard to link the hotel number")
    finally:
        await client.aclose()


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    asyncio.run(setup_session())


if __name__ == "__main__":
    main()
