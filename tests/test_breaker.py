"""Tests for the failure-rate circuit breaker."""

from __future__ import annotations

from datetime import timedelta

from hookrelay.config import Settings
from hookrelay.delivery import CircuitBreaker, HookDispatcher, RetrySweeper
from hookrelay.models import DeliveryLog
from hookrelay.storage import HookStorage

from utils import FakeClock, Receiver


async def _seed_failures(
    storage: HookStorage, hook_id: str, clock: FakeClock, count: int
) -> None:
    for _ in range(count):
        log = DeliveryLog(
            hook_id=hook_id,
            event="ticket.created",
            payload="{}",
            created_at=clock(),
            updated_at=clock(),
        )
        log.mark_failed("HTTP 500", clock())
        await storage.log_delivery(log)


class TestCircuitBreaker:
    """Tests for CircuitBreaker.evaluate."""

    async def test_below_threshold(
        self, storage: HookStorage, clock: FakeClock, make_hook
    ) -> None:
        hook = await make_hook()
        await _seed_failures(storage, hook.id, clock, 9)
        breaker = CircuitBreaker(storage, clock=clock)

        assert await breaker.evaluate(hook) is False
        assert (await storage.get_hook(hook.id)).status == "active"

    async def test_at_threshold_deactivates(
        self, storage: HookStorage, clock: FakeClock, make_hook
    ) -> None:
        hook = await make_hook()
        await _seed_failures(storage, hook.id, clock, 10)
        breaker = CircuitBreaker(storage, clock=clock)

        assert await breaker.evaluate(hook) is True

        updated = await storage.get_hook(hook.id)
        assert updated.status == "inactive"
        assert updated.last_error == "Deactivated after 10 failed deliveries in 24h"

    async def test_failures_outside_window_are_ignored(
        self, storage: HookStorage, clock: FakeClock, make_hook
    ) -> None:
        hook = await make_hook()
        await _seed_failures(storage, hook.id, clock, 6)
        clock.advance(hours=25)
        await _seed_failures(storage, hook.id, clock, 6)
        breaker = CircuitBreaker(storage, clock=clock)

        assert await breaker.evaluate(hook) is False

    async def test_other_hooks_are_not_counted(
        self, storage: HookStorage, clock: FakeClock, make_hook
    ) -> None:
        noisy = await make_hook()
        quiet = await make_hook()
        await _seed_failures(storage, noisy.id, clock, 10)
        breaker = CircuitBreaker(storage, clock=clock)

        assert await breaker.evaluate(quiet) is False
        assert (await storage.get_hook(quiet.id)).status == "active"

    async def test_inactive_hook_is_skipped(
        self, storage: HookStorage, clock: FakeClock, make_hook
    ) -> None:
        hook = await make_hook(status="inactive")
        await _seed_failures(storage, hook.id, clock, 10)
        breaker = CircuitBreaker(storage, clock=clock)

        assert await breaker.evaluate(hook) is False

    async def test_custom_threshold_and_window(
        self, storage: HookStorage, clock: FakeClock, make_hook
    ) -> None:
        hook = await make_hook()
        await _seed_failures(storage, hook.id, clock, 3)
        breaker = CircuitBreaker(storage, threshold=3, window=timedelta(hours=1), clock=clock)

        assert breaker.threshold == 3
        assert await breaker.evaluate(hook) is True
        assert (await storage.get_hook(hook.id)).last_error == (
            "Deactivated after 3 failed deliveries in 1h"
        )


class TestBreakerInDeliveryPath:
    async def test_tenth_failure_deactivates_and_later_triggers_skip(
        self, storage: HookStorage, clock: FakeClock, make_hook
    ) -> None:
        settings = Settings(env="test", cors_enabled=False)
        receiver = Receiver(default=500)
        dispatcher = HookDispatcher(
            storage, settings=settings, clock=clock, transport=receiver.transport
        )
        sweeper = RetrySweeper(storage, dispatcher, settings=settings, clock=clock)
        hook = await make_hook(max_retries=1)
        await _seed_failures(storage, hook.id, clock, 9)

        await dispatcher.trigger("ticket.created", {})
        await dispatcher.wait_idle()
        logs = await storage.list_deliveries(hook_id=hook.id)
        [log] = [d for d in logs if d.status == "retrying"]
        clock.now = log.next_retry_at
        await sweeper.sweep_once()

        updated = await storage.get_hook(hook.id)
        assert updated.status == "inactive"
        assert updated.last_error.startswith("Deactivated after 10 failed deliveries")

        sent = len(receiver.requests)
        assert await dispatcher.trigger("ticket.created", {}) == 0
        await dispatcher.wait_idle()
        assert len(receiver.requests) == sent

    async def test_reactivation_is_manual(
        self, storage: HookStorage, clock: FakeClock, make_hook
    ) -> None:
        hook = await make_hook()
        await _seed_failures(storage, hook.id, clock, 10)
        await CircuitBreaker(storage, clock=clock).evaluate(hook)

        reactivated = await storage.set_hook_status(hook.id, "active")

        assert reactivated.status == "active"
        assert await storage.get_active_hooks_for_event("ticket.created") == [reactivated]
