from __future__ import annotations

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from guest_messaging.api.deps import WahaDep
from guest_messaging.application.exceptions import DeliveryError
from guest_messaging.infrastructure.db.session import AsyncSessionLocal

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz")
async def readyz(waha: WahaDep) -> JSONResponse:
    """Ready when the queue database answers.

    The WAHA session state is reported but does not gate readiness: the API
    only enqueues, and the worker retries sends while the gateway is down.
    """
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
    except Exception as exc:  # noqa: BLE001
        logger.warning("Readiness check: database unavailable: %s", exc)
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "errors": [f"database: {exc}"]},
        )

    try:
        session_info = await waha.get_session_status()
        waha_status = session_info.get("status", "unknown")
    except DeliveryError as exc:
        waha_status = f"unreachable ({exc.detail})"

    return JSONResponse(content={"status": "ready", "waha": waha_status})
