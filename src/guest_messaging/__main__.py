"""Entrypoint: python -m guest_messaging"""
from __future__ import annotations

import uvicorn

from guest_messaging.config import settings
from guest_messaging.log import configure_logging


def main() -> None:
    configure_logging(settings.LOG_LEVEL)
    uvicorn.run(
        "guest_messaging.app:create_app",
        factory=True,
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level=settings.LOG_LEVEL.lower(),
        log_config=None,
    )


if __name__ == "__main__":
    main()
