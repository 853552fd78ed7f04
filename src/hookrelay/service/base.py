"""Core hookrelay service layer.

This module provides HookService, which wires storage, the hook registry,
the dispatcher and the retry sweeper together and owns their lifecycle.

Example:
    ```python
    from hookrelay.service import HookService

    async with HookService.create() as hooks:
        hook = await hooks.registry.create(
            {"name": "ops", "url": "https://ops.example.com/hook", "events": ["ticket.created"]}
        )
        await hooks.trigger("ticket.created", {"ticket_id": "T-1"})
    ```
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from hookrelay.config import Settings
from hookrelay.delivery import HookDispatcher, RetrySweeper
from hookrelay.models import ALL_EVENT_TYPES, DeliveryLog, HookStats, utc_now
from hookrelay.storage import HookStorage

from .registry import HookRegistry

if TYPE_CHECKING:
    import httpx

    from hookrelay.models import Clock, EventType, TestDeliveryResult


@dataclass
class HookService:
    """High-level hook delivery service.

    Provides:
    - registry: hook CRUD and activation
    - trigger(): fire-and-forget event fan-out for producers
    - get_logs(), get_hook_logs(), get_stats(): delivery observability
    - test_hook(): synthetic delivery without retry state
    - start()/close(): sweeper and storage lifecycle

    Attributes:
        storage: Storage backend (Qdrant).
        settings: Configuration settings.
        dispatcher: Event matcher and delivery executor.
        sweeper: Background retry sweeper.
    """

    storage: HookStorage
    settings: Settings
    dispatcher: HookDispatcher
    sweeper: RetrySweeper
    registry: HookRegistry = field(init=False)

    def __post_init__(self) -> None:
        self.registry = HookRegistry(self.storage)

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        clock: Clock = utc_now,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> HookService:
        """Create a HookService with default dependencies.

        Args:
            settings: Optional settings. Uses environment if None.
            clock: Source of the current time, shared by every component.
            transport: Optional httpx transport for outbound deliveries.

        Returns:
            Configured, not yet initialized HookService.
        """
        if settings is None:
            settings = Settings()

        storage = HookStorage(
            url=settings.qdrant_url,
            api_key=settings.qdrant_api_key,
            prefix=settings.collection_prefix,
            max_scroll_limit=settings.storage_max_scroll_limit,
        )
        dispatcher = HookDispatcher(storage, settings=settings, clock=clock, transport=transport)
        sweeper = RetrySweeper(storage, dispatcher, settings=settings, clock=clock)
        return cls(storage=storage, settings=settings, dispatcher=dispatcher, sweeper=sweeper)

    async def initialize(self) -> None:
        """Initialize storage collections."""
        await self.storage.initialize()

    def start(self) -> None:
        """Start the background retry sweeper."""
        self.sweeper.start()

    async def close(self) -> None:
        """Stop the sweeper, let in-flight deliveries finish, close storage."""
        await self.sweeper.stop()
        await self.dispatcher.wait_idle()
        await self.storage.close()

    async def __aenter__(self) -> HookService:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def trigger(
        self,
        event: str,
        data: dict[str, Any],
        group_id: str | None = None,
        ticket_status: str | None = None,
    ) -> int:
        """Producer entry point; see HookDispatcher.trigger."""
        return await self.dispatcher.trigger(
            event, data, group_id=group_id, ticket_status=ticket_status
        )

    @staticmethod
    def supported_events() -> list[EventType]:
        return list(ALL_EVENT_TYPES)

    def _bounded(self, limit: int) -> int:
        return max(1, min(limit, self.settings.logs_max_limit))

    async def get_logs(self, limit: int = 100) -> list[DeliveryLog]:
        """Most recent delivery logs across all hooks."""
        return await self.storage.list_deliveries(limit=self._bounded(limit))

    async def get_hook_logs(self, hook_id: str, limit: int = 50) -> list[DeliveryLog]:
        """Most recent delivery logs for one hook.

        Raises:
            NotFoundError: If the hook does not exist.
        """
        await self.registry.require(hook_id)
        return await self.storage.list_deliveries(hook_id=hook_id, limit=self._bounded(limit))

    async def get_stats(self, hook_id: str) -> HookStats:
        """Delivery statistics for a hook.

        total_triggers counts attempts (success_count + failure_count);
        avg_response_time_ms and event_breakdown come from retained logs.

        Raises:
            NotFoundError: If the hook does not exist.
        """
        hook = await self.registry.require(hook_id)
        logs = await self.storage.list_deliveries(
            hook_id=hook_id,
            limit=self.settings.storage_max_scroll_limit,
        )

        total = hook.success_count + hook.failure_count
        success_rate = (hook.success_count / total) * 100 if total else 0.0
        durations = [log.duration_ms for log in logs if log.duration_ms]
        avg_response = sum(durations) / len(durations) if durations else 0.0

        return HookStats(
            total_triggers=total,
            success_rate=round(success_rate, 2),
            avg_response_time_ms=round(avg_response),
            last_triggered=hook.last_triggered_at,
            event_breakdown=dict(Counter(log.event for log in logs)),
        )

    async def test_hook(self, hook_id: str) -> TestDeliveryResult:
        """Send a synthetic payload to a hook.

        Raises:
            NotFoundError: If the hook does not exist.
        """
        hook = await self.registry.require(hook_id)
        return await self.dispatcher.send_test(hook)


__all__ = ["HookService"]
