from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from guest_messaging.api.middleware.correlation_id import CorrelationIdMiddleware
from guest_messaging.api.middleware.timing import RequestTimingMiddleware
from guest_messaging.api.v1.routers import health, messages, webhook
from guest_messaging.application.exceptions import NotFoundError, StoreError, ValidationError
from guest_messaging.config import settings
from guest_messaging.infrastructure.auth.hs256_verifier import HS256Verifier
from guest_messaging.infrastructure.db.session import engine
from guest_messaging.infrastructure.waha.client import WahaClient

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info(
        "Guest messaging API starting (WAHA %s, session %s)",
        settings.WAHA_API_URL,
        settings.WAHA_SESSION_NAME,
    )

    yield

    await app.state.waha.aclose()
    await engine.dispose()
    logger.info("WAHA client and database pool closed")


def create_app() -> FastAPI:
    """Producer-facing API: enqueue, inspect and monitor outbound messages,
    plus the WAHA webhook receiver. Delivery happens in the worker process.
    """
    app = FastAPI(
        title="Hotel Guest Messaging Service",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.verifier = HS256Verifier(
        settings.JWT_SECRET,
        settings.JWT_ALGORITHM,
        audience=settings.JWT_AUDIENCE,
    )
    app.state.waha = WahaClient.from_settings()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestTimingMiddleware)
    # Outermost, so the timing log line carries the request id.
    app.add_middleware(CorrelationIdMiddleware)

    _register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(messages.router)
    app.include_router(webhook.router)

    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    async def _not_found(_req: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": exc.detail})

    @app.exception_handler(ValidationError)
    async def _validation(_req: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": exc.detail})

    @app.exception_handler(StoreError)
    async def _store_unavailable(req: Request, exc: StoreError) -> JSONResponse:
        logger.error("%s %s: %s", req.method, req.url.path, exc.detail)
        return JSONResponse(
            status_code=503,
            content={"detail": "Message store unavailable"},
            headers={"Retry-After": str(int(settings.QUEUE_STORE_ERROR_PAUSE_SECONDS))},
        )
