"""Process-wide logging setup shared by the API, the worker and the scripts."""
from __future__ import annotations

import logging
from contextvars import ContextVar

# Request id in the API, queue item id in the worker.
correlation_id_ctx: ContextVar[str] = ContextVar("correlation_id", default="")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(correlation_id)s]: %(message)s"


class CorrelationIdFilter(logging.Filter):
    """Expose the current correlation id to log formats as %(correlation_id)s."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_ctx.get() or "-"
        return True


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)
    for handler in logging.getLogger().handlers:
        handler.addFilter(CorrelationIdFilter())
    # httpx logs every request at INFO; the WAHA client logs its own calls.
    logging.getLogger("httpx").setLevel(logging.WARNING)
