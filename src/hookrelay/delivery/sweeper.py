"""Background retry sweeper.

Periodically claims delivery logs in the ``retrying`` state whose
``next_retry_at`` has passed and replays them through the dispatcher's
execution primitive with their original frozen payload.
"""

from __future__ import annotations

import asyncio
import contextlib
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from hookrelay.config import Settings
from hookrelay.config import settings as default_settings
from hookrelay.logging import get_logger
from hookrelay.models import utc_now

if TYPE_CHECKING:
    from hookrelay.models import Clock, DeliveryLog
    from hookrelay.storage import HookStorage

    from .dispatcher import HookDispatcher

logger = get_logger(__name__)

DRIFT_ERROR = "Hook deactivated or deleted"


class RetrySweeper:
    """Replays due retries on a fixed period.

    The sweeper is an explicit task: ``start()`` schedules the periodic loop
    and ``stop()`` cancels it. Tests call ``sweep_once()`` directly with an
    injected clock instead of waiting on the timer.

    Example:
        ```python
        sweeper = RetrySweeper(storage, dispatcher)
        sweeper.start()
        ...
        await sweeper.stop()
        ```
    """

    def __init__(
        self,
        storage: HookStorage,
        dispatcher: HookDispatcher,
        settings: Settings | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._storage = storage
        self._dispatcher = dispatcher
        self._settings = settings or default_settings
        self._clock = clock
        self._interval = self._settings.retry_interval_seconds
        self._batch_size = self._settings.retry_batch_size
        self._lease = timedelta(seconds=self._settings.retry_claim_ttl_seconds)
        self._retention = timedelta(days=self._settings.delivery_retention_days)
        self._purge_every = timedelta(seconds=self._settings.purge_interval_seconds)
        self._last_purge: datetime | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep_once(self) -> int:
        """Claim and process one batch of due retries.

        Claimed retries run concurrently with each other and with any live
        dispatcher fan-out.

        Returns:
            Number of deliveries claimed.
        """
        claimed = await self._storage.claim_due_retries(
            now=self._clock(),
            limit=self._batch_size,
            lease=self._lease,
        )
        if not claimed:
            return 0

        logger.info("Processing hook retries", count=len(claimed))

        results = await asyncio.gather(
            *(self._retry(delivery) for delivery in claimed),
            return_exceptions=True,
        )
        for delivery, result in zip(claimed, results, strict=True):
            if isinstance(result, Exception):
                logger.error(
                    "Hook retry crashed",
                    delivery_id=delivery.id,
                    hook_id=delivery.hook_id,
                    error=str(result),
                    exc_info=result,
                )

        return len(claimed)

    async def _retry(self, delivery: DeliveryLog) -> None:
        hook = await self._storage.get_hook(delivery.hook_id)
        if hook is None or not hook.is_active:
            delivery.mark_failed(DRIFT_ERROR, self._clock())
            await self._storage.update_delivery(delivery)
            logger.info(
                "Retry dropped",
                delivery_id=delivery.id,
                hook_id=delivery.hook_id,
                reason=DRIFT_ERROR,
            )
            return

        delivery.attempts += 1
        delivery.updated_at = self._clock()
        # A failed write here leaves the claim lease to expire and re-offer the row
        await self._storage.update_delivery(delivery)
        try:
            await self._dispatcher.execute(hook, delivery)
        except Exception as e:
            await self._dispatcher.recover(hook, delivery, e)
            raise

    async def purge_expired(self) -> int:
        """Delete delivery logs older than the retention window."""
        now = self._clock()
        self._last_purge = now
        return await self._storage.purge_expired_deliveries(before=now - self._retention)

    def _purge_due(self) -> bool:
        if self._last_purge is None:
            return True
        return self._clock() - self._last_purge >= self._purge_every

    async def _run(self) -> None:
        logger.info("Hook retry sweeper started", interval_seconds=self._interval)
        while True:
            try:
                await self.sweep_once()
                if self._purge_due():
                    await self.purge_expired()
            except Exception:
                logger.exception("Error processing hook retries")
            await asyncio.sleep(self._interval)

    def start(self) -> None:
        """Start the periodic sweep loop on the running event loop."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name="hookrelay-retry-sweeper")

    async def stop(self) -> None:
        """Stop the sweep loop and wait for it to exit."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Hook retry sweeper stopped")
