"""Circuit breaker that deactivates chronically failing hooks."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from hookrelay.logging import get_logger
from hookrelay.models import utc_now

if TYPE_CHECKING:
    from hookrelay.models import Clock, Hook
    from hookrelay.storage import HookStorage

logger = get_logger(__name__)


class CircuitBreaker:
    """Rolling-window failure policy.

    Evaluated after every delivery that ends in ``failed``. When a hook has
    accumulated ``threshold`` failed deliveries created within ``window``,
    it is set to ``inactive`` and the dispatcher stops matching it.
    Reactivation is a manual registry operation.
    """

    def __init__(
        self,
        storage: HookStorage,
        threshold: int = 10,
        window: timedelta = timedelta(hours=24),
        clock: Clock = utc_now,
    ) -> None:
        self._storage = storage
        self._threshold = threshold
        self._window = window
        self._clock = clock

    @property
    def threshold(self) -> int:
        return self._threshold

    async def evaluate(self, hook: Hook) -> bool:
        """Deactivate the hook if it crossed the failure threshold.

        Returns:
            True if the hook was deactivated by this call.
        """
        if not hook.is_active:
            return False

        since = self._clock() - self._window
        failures = await self._storage.count_failed_deliveries(hook.id, since)
        if failures < self._threshold:
            return False

        hours = self._window.total_seconds() / 3600
        reason = f"Deactivated after {failures} failed deliveries in {hours:g}h"
        updated = await self._storage.set_hook_status(hook.id, "inactive", reason)
        if updated is None:
            return False

        logger.warning(
            "Hook deactivated by circuit breaker",
            hook_id=hook.id,
            hook_name=hook.name,
            failures=failures,
            window_hours=hours,
        )
        return True
