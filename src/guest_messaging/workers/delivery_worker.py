"""Delivery worker: claims due queue items and sends them through WAHA."""
from __future__ import annotations

import asyncio
import logging
from collections import Counter
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from guest_messaging.application.exceptions import StoreError
from guest_messaging.application.ports.clock import Clock, SystemClock
from guest_messaging.application.ports.provider import ProviderClient
from guest_messaging.config import settings
from guest_messaging.domain.value_objects.enums import DeliveryOutcome
from guest_messaging.infrastructure.db.session import AsyncSessionLocal
from guest_messaging.infrastructure.db.uow import SqlAlchemyUoW
from guest_messaging.infrastructure.waha.client import WahaClient
from guest_messaging.log import configure_logging, correlation_id_ctx
from guest_messaging.services import delivery_service

logger = logging.getLogger(__name__)


class DeliveryWorker:
    """One polling loop over the shared queue.

    Several instances (in one process or many) can run side by side: the
    atomic claim in the store is the only coordination between them.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        provider: ProviderClient,
        *,
        clock: Clock | None = None,
        batch_size: int | None = None,
        poll_interval: float | None = None,
        store_error_pause: float | None = None,
        stale_after: float | None = None,
        reaper_interval: float | None = None,
        rate_limit: int | None = None,
        rate_window_seconds: int | None = None,
        send_timeout: float | None = None,
        backoff_base: float | None = None,
        defer_seconds: float | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._provider = provider
        self._clock = clock or SystemClock()
        self._batch_size = batch_size or settings.QUEUE_BATCH_SIZE
        self._poll_interval = settings.QUEUE_POLL_INTERVAL if poll_interval is None else poll_interval
        self._store_error_pause = (
            settings.QUEUE_STORE_ERROR_PAUSE_SECONDS if store_error_pause is None else store_error_pause
        )
        self._stale_after = settings.QUEUE_STALE_AFTER_SECONDS if stale_after is None else stale_after
        self._reaper_interval = (
            settings.QUEUE_REAPER_INTERVAL_SECONDS if reaper_interval is None else reaper_interval
        )
        self._rate_limit = rate_limit
        self._rate_window_seconds = rate_window_seconds
        self._send_timeout = send_timeout
        self._backoff_base = backoff_base
        self._defer_seconds = defer_seconds
        self._last_reap: datetime | None = None
        self._stopping = asyncio.Event()

    def stop(self) -> None:
        self._stopping.set()

    async def run(self) -> None:
        logger.info(
            "Delivery worker started (poll=%.1fs, batch=%d, stale_after=%.0fs)",
            self._poll_interval,
            self._batch_size,
            self._stale_after,
        )
        while not self._stopping.is_set():
            try:
                await self.reap_stale()
                claimed = await self.process_batch()
            except StoreError:
                logger.exception("Queue store unavailable, pausing for %.1fs", self._store_error_pause)
                await self._sleep(self._store_error_pause)
                continue
            except Exception:
                logger.exception("Delivery worker loop error")
                claimed = 0
            if not claimed:
                await self._sleep(self._poll_interval)
        logger.info("Delivery worker stopped")

    async def process_batch(self) -> int:
        """Claim and deliver one batch. Returns the number of items claimed."""
        async with self._session_factory() as session:
            uow = self._uow(session)
            batch = await uow.queue.claim_next_batch(self._batch_size, self._clock.now())
            await uow.commit()
            if not batch:
                return 0

            outcomes: Counter[DeliveryOutcome] = Counter()
            for item in batch:
                token = correlation_id_ctx.set(str(item.id))
                try:
                    outcome = await delivery_service.deliver(
                        item,
                        uow,
                        self._provider,
                        self._clock,
                        backoff_base=self._backoff_base,
                        defer_seconds=self._defer_seconds,
                        send_timeout=self._send_timeout,
                    )
                except StoreError:
                    raise
                except Exception:
                    # Left in processing; the reaper hands it back once the lease expires.
                    logger.exception("Unexpected error delivering item %s", item.id)
                    await uow.rollback()
                    continue
                finally:
                    correlation_id_ctx.reset(token)
                outcomes[outcome] += 1

        logger.info(
            "Processed %d queued messages (%s)",
            len(batch),
            ", ".join(f"{k}={v}" for k, v in sorted(outcomes.items())),
        )
        return len(batch)

    async def reap_stale(self) -> int:
        """Return items orphaned in processing by a crashed worker to pending."""
        if self._stale_after <= 0:
            return 0
        now = self._clock.now()
        if self._last_reap is not None and now - self._last_reap < timedelta(seconds=self._reaper_interval):
            return 0
        self._last_reap = now

        async with self._session_factory() as session:
            uow = self._uow(session)
            released = await uow.queue.release_stale(now - timedelta(seconds=self._stale_after))
            await uow.commit()
        if released:
            logger.warning("Released %d queue items with expired processing leases", released)
        return released

    def _uow(self, session: AsyncSession) -> SqlAlchemyUoW:
        return SqlAlchemyUoW(
            session,
            self._clock,
            rate_limit=self._rate_limit,
            rate_window_seconds=self._rate_window_seconds,
        )

    async def _sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
        except TimeoutError:
            pass


async def run_delivery_worker() -> None:
    provider = WahaClient.from_settings()
    worker = DeliveryWorker(AsyncSessionLocal, provider)
    try:
        await worker.run()
    finally:
        await provider.aclose()


def main() -> None:
    configure_logging(settings.LOG_LEVEL)
    asyncio.run(run_delivery_worker())


if __name__ == "__main__":
    main()
