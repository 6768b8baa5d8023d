from __future__ import annotations

import uuid

from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from guest_messaging.log import correlation_id_ctx

HEADER = "X-Request-ID"


class CorrelationIdMiddleware:
    """Tag each HTTP request with an id, echo it back and expose it to logging.

    Plain ASGI so the context variable is set in the same task that runs
    the endpoint.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_headers = dict(scope["headers"])
        cid = request_headers.get(HEADER.lower().encode(), b"").decode("latin-1") or uuid.uuid4().hex

        async def send_with_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                MutableHeaders(scope=message)[HEADER] = cid
            await send(message)

        token = correlation_id_ctx.set(cid)
        try:
            await self.app(scope, receive, send_with_id)
        finally:
            correlation_id_ctx.reset(token)
