"""Event dispatch and delivery execution.

Matches a triggered event against active hooks, fans out one delivery task
per matched hook, and records each attempt on its delivery log. The same
execution primitive serves first attempts and sweeper-driven retries.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

import httpx

from hookrelay.config import Settings
from hookrelay.config import settings as default_settings
from hookrelay.logging import bind_context, get_logger
from hookrelay.models import DeliveryLog, HookPayload, TestDeliveryResult, utc_now

from .breaker import CircuitBreaker
from .signing import SIGNATURE_HEADER, compute_signature

if TYPE_CHECKING:
    from hookrelay.models import Clock, Hook
    from hookrelay.storage import HookStorage

logger = get_logger(__name__)

EVENT_HEADER = "X-Hook-Event"
TIMESTAMP_HEADER = "X-Hook-Timestamp"
DELIVERY_HEADER = "X-Hook-Delivery-Id"
RETRY_HEADER = "X-Hook-Retry"
TEST_HEADER = "X-Hook-Test"

# Custom hook headers may not set these (case-insensitive), nor any X-Hook-* name.
_RESERVED_HEADERS = frozenset({"content-type", "content-length", "host"})
_RESERVED_PREFIX = "x-hook-"


@dataclass
class AttemptResult:
    """Outcome of a single HTTP POST."""

    status_code: int | None
    body: str | None
    error: str | None
    duration_ms: int

    @property
    def ok(self) -> bool:
        return self.status_code is not None and 200 <= self.status_code < 300


def is_reserved_header(name: str) -> bool:
    lowered = name.lower()
    return lowered in _RESERVED_HEADERS or lowered.startswith(_RESERVED_PREFIX)


class HookDispatcher:
    """Dispatches events to registered hooks.

    Handles:
    - Finding active hooks subscribed to an event and applying filters
    - Fire-and-forget fan-out, one task per matched hook
    - Signing payloads with HMAC-SHA256
    - Recording outcomes, scheduling retries with exponential backoff
    - Handing terminal failures to the circuit breaker

    Example:
        ```python
        dispatcher = HookDispatcher(storage)

        scheduled = await dispatcher.trigger(
            "ticket.created", {"ticket_id": "T-1"}, group_id="G1"
        )
        await dispatcher.wait_idle()
        ```
    """

    def __init__(
        self,
        storage: HookStorage,
        settings: Settings | None = None,
        breaker: CircuitBreaker | None = None,
        clock: Clock = utc_now,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            storage: HookStorage for hooks and delivery logs.
            settings: Delivery and retry settings. Defaults to global settings.
            breaker: Circuit breaker. Built from settings if None.
            clock: Source of the current time.
            transport: Optional httpx transport, e.g. httpx.MockTransport in tests.
        """
        self._storage = storage
        self._settings = settings or default_settings
        self._clock = clock
        self._transport = transport
        self._breaker = breaker or CircuitBreaker(
            storage,
            threshold=self._settings.breaker_failure_threshold,
            window=timedelta(hours=self._settings.breaker_window_hours),
            clock=clock,
        )
        self._semaphore = asyncio.Semaphore(self._settings.max_concurrent_deliveries)
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    @property
    def in_flight(self) -> int:
        """Number of delivery and bookkeeping tasks still running."""
        return len(self._tasks)

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    async def trigger(
        self,
        event: str,
        data: dict[str, Any],
        group_id: str | None = None,
        ticket_status: str | None = None,
    ) -> int:
        """Deliver an event to every matching hook without waiting for HTTP.

        The payload is frozen here, once, and every scheduled delivery (and
        its retries) sends the same bytes.

        Args:
            event: Event tag, e.g. "ticket.created".
            data: Event data placed under "data" in the body.
            group_id: Group the event belongs to, matched against filter_group_ids.
            ticket_status: Ticket status, matched against filter_ticket_statuses.

        Returns:
            Number of deliveries scheduled.
        """
        try:
            hooks = await self._storage.get_active_hooks_for_event(event)
        except Exception:
            logger.exception("Error loading hooks for event", hook_event=event)
            return 0

        matched = [h for h in hooks if h.matches(group_id=group_id, ticket_status=ticket_status)]
        if not matched:
            logger.debug("No active hooks for event", hook_event=event)
            return 0

        body = HookPayload(event=event, timestamp=self._clock(), data=data).to_json()

        logger.info("Triggering hooks", hook_event=event, count=len(matched))

        deliveries = [self._spawn(self._deliver(hook, event, body)) for hook in matched]
        self._spawn(self._summarize(event, deliveries))
        return len(matched)

    async def wait_idle(self) -> None:
        """Wait until every scheduled delivery has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _spawn(self, coro: Any) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _summarize(self, event: str, deliveries: list[asyncio.Task[Any]]) -> None:
        results = await asyncio.gather(*deliveries, return_exceptions=True)
        succeeded = sum(1 for r in results if r == "success")
        logger.info(
            "Hook results",
            hook_event=event,
            succeeded=succeeded,
            failed=len(results) - succeeded,
        )

    async def _deliver(self, hook: Hook, event: str, body: str) -> str:
        """First attempt for one hook. Errors stay inside this task."""
        bind_context(hook_id=hook.id)
        now = self._clock()
        delivery = DeliveryLog(
            hook_id=hook.id,
            event=event,
            payload=body,
            created_at=now,
            updated_at=now,
        )
        try:
            await self._storage.log_delivery(delivery)
            await self.execute(hook, delivery)
        except Exception as e:
            logger.exception("Hook delivery crashed", delivery_id=delivery.id)
            await self.recover(hook, delivery, e)
            return "error"
        return delivery.status

    # ------------------------------------------------------------------
    # Execution primitive
    # ------------------------------------------------------------------

    async def execute(self, hook: Hook, delivery: DeliveryLog) -> DeliveryLog:
        """Run one delivery attempt and apply the success/failure policy.

        The caller owns the delivery log (it created it, or claimed it from
        the sweeper queue) and has already set ``attempts`` for this attempt.

        Args:
            hook: Target hook.
            delivery: Delivery log carrying the frozen payload.

        Returns:
            The updated delivery log.
        """
        bind_context(delivery_id=delivery.id)
        headers = self.build_headers(
            hook,
            event=delivery.event,
            timestamp=delivery.payload_data.get("timestamp", ""),
            body=delivery.payload,
            delivery_id=delivery.id,
            attempt=delivery.attempts,
        )

        async with self._semaphore:
            result = await self._post(hook, delivery.payload, headers)

        now = self._clock()
        delivery.record_response(
            result.status_code,
            result.body,
            result.duration_ms,
            limit=self._settings.response_body_limit,
        )

        if result.ok:
            delivery.mark_success(now)
            await self._storage.update_delivery(delivery)
            await self._storage.record_hook_success(hook.id, now)
            logger.info(
                "Hook delivered",
                hook_name=hook.name,
                hook_event=delivery.event,
                attempt=delivery.attempts,
                status_code=result.status_code,
                duration_ms=result.duration_ms,
            )
        else:
            await self._handle_failure(hook, delivery, result.error or "Unknown error", now)

        return delivery

    async def _handle_failure(
        self,
        hook: Hook,
        delivery: DeliveryLog,
        error: str,
        now: datetime,
    ) -> None:
        await self._storage.record_hook_failure(hook.id, now, error)

        if delivery.attempts <= hook.max_retries:
            next_retry = self.next_retry_at(delivery.attempts, now)
            delivery.mark_retrying(next_retry, error, now)
            await self._storage.update_delivery(delivery)
            logger.warning(
                "Hook delivery failed, retry scheduled",
                hook_name=hook.name,
                attempt=delivery.attempts,
                max_retries=hook.max_retries,
                next_retry_at=next_retry.isoformat(),
                error=error,
            )
            return

        delivery.mark_failed(error, now)
        await self._storage.update_delivery(delivery)
        logger.warning(
            "Hook delivery failed permanently",
            hook_name=hook.name,
            attempts=delivery.attempts,
            error=error,
        )
        await self._breaker.evaluate(hook)

    async def recover(self, hook: Hook, delivery: DeliveryLog, exc: Exception) -> bool:
        """Persist a resumable state for a delivery whose attempt crashed.

        A log left ``pending`` is never claimed by the sweeper, so a crashed
        attempt is rescheduled like any other failure, or failed once its
        retries are spent. A terminal outcome reached in memory before the
        crash is written as is. Never raises.

        Returns:
            True if the recovered state was stored.
        """
        now = self._clock()
        if not delivery.is_terminal:
            error = delivery.error_message or str(exc) or type(exc).__name__
            if delivery.attempts <= hook.max_retries:
                delivery.mark_retrying(self.next_retry_at(delivery.attempts, now), error, now)
            else:
                delivery.mark_failed(error, now)

        try:
            await self._storage.update_delivery(delivery)
            if delivery.status == "failed":
                await self._breaker.evaluate(hook)
        except Exception:
            logger.exception(
                "Could not recover delivery",
                delivery_id=delivery.id,
                status=delivery.status,
            )
            return False

        logger.warning(
            "Recovered crashed delivery",
            delivery_id=delivery.id,
            status=delivery.status,
            attempt=delivery.attempts,
        )
        return True

    def next_retry_at(self, attempts: int, now: datetime) -> datetime:
        """Backoff of ``base ** attempts`` units after the given attempt count."""
        delay = self._settings.retry_backoff_unit_seconds * (
            self._settings.retry_backoff_base**attempts
        )
        return now + timedelta(seconds=delay)

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def build_headers(
        self,
        hook: Hook,
        event: str,
        timestamp: str,
        body: str,
        delivery_id: str | None = None,
        attempt: int = 1,
        extra: dict[str, str] | None = None,
    ) -> dict[str, str]:
        """Build request headers for a delivery.

        Custom hook headers come first and can never replace the content type
        or any X-Hook-* metadata, including the signature.
        """
        headers = {
            name: value for name, value in hook.headers.items() if not is_reserved_header(name)
        }
        headers["Content-Type"] = "application/json"
        headers[EVENT_HEADER] = event
        headers[TIMESTAMP_HEADER] = timestamp
        if delivery_id is not None:
            headers[DELIVERY_HEADER] = delivery_id
        if attempt > 1:
            headers[RETRY_HEADER] = str(attempt)
        if extra:
            headers.update(extra)
        if hook.secret:
            headers[SIGNATURE_HEADER] = compute_signature(body, hook.secret)
        return headers

    async def _post(self, hook: Hook, body: str, headers: dict[str, str]) -> AttemptResult:
        start = time.monotonic()
        status_code: int | None = None
        text: str | None = None
        error: str | None = None

        try:
            async with httpx.AsyncClient(
                timeout=hook.timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    hook.url,
                    content=body.encode("utf-8"),
                    headers=headers,
                )
            status_code = response.status_code
            text = response.text or None
            if not 200 <= status_code < 300:
                error = f"HTTP {status_code}"
        except httpx.TimeoutException:
            error = "Request timeout"
        except httpx.HTTPError as e:
            error = str(e) or type(e).__name__
        except Exception as e:
            logger.exception("Unexpected delivery error", hook_id=hook.id)
            error = f"Unexpected error: {e}"

        duration_ms = int((time.monotonic() - start) * 1000)
        return AttemptResult(
            status_code=status_code, body=text, error=error, duration_ms=duration_ms
        )

    async def send_test(self, hook: Hook) -> TestDeliveryResult:
        """Send a synthetic payload through the signing and HTTP path.

        No delivery log is created and hook counters are untouched.
        """
        payload = HookPayload(
            event="ticket.created",
            timestamp=self._clock(),
            data={
                "test": True,
                "message": "This is a test webhook",
                "hook_id": hook.id,
            },
        )
        body = payload.to_json()
        headers = self.build_headers(
            hook,
            event="test",
            timestamp=payload.timestamp.isoformat(),
            body=body,
            extra={TEST_HEADER: "true"},
        )

        result = await self._post(hook, body, headers)
        return TestDeliveryResult(
            success=result.ok,
            status_code=result.status_code,
            response_time_ms=result.duration_ms,
            error=result.error,
        )
