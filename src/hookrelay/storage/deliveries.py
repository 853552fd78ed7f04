"""Delivery log storage operations.

Provides methods to record delivery attempts, claim due retries, count
recent failures for the circuit breaker, and purge expired logs.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any

from qdrant_client import models

from hookrelay.models import DeliveryLog

from .base import to_timestamp

logger = logging.getLogger(__name__)


class DeliveryMixin:
    """Mixin providing delivery log operations for HookStorage.

    This mixin expects the following attributes/methods from the base class:
    - _collection_name(record_type) -> str
    - _upsert / _retrieve / _set_payload / _scroll_all
    - _payload_to_model(payload, model_class)
    - _write_lock: asyncio.Lock
    - client: AsyncQdrantClient
    """

    _collection_name: Any
    _upsert: Any
    _retrieve: Any
    _set_payload: Any
    _scroll_all: Any
    _payload_to_model: Any
    _write_lock: asyncio.Lock
    client: Any

    async def log_delivery(self, delivery: DeliveryLog) -> str:
        """Store a delivery log.

        Args:
            delivery: DeliveryLog to store.

        Returns:
            The delivery ID.
        """
        await self._upsert("deliveries", delivery.id, delivery)
        return delivery.id

    async def update_delivery(self, delivery: DeliveryLog) -> str:
        """Update an existing delivery log.

        The caller must own the log: either it created it for a first
        attempt, or it claimed it through claim_due_retries().
        """
        return await self.log_delivery(delivery)

    async def get_delivery(self, delivery_id: str) -> DeliveryLog | None:
        """Get a delivery log by ID."""
        payload = await self._retrieve("deliveries", delivery_id)
        if payload is None:
            return None
        delivery: DeliveryLog = self._payload_to_model(payload, DeliveryLog)
        return delivery

    async def list_deliveries(
        self,
        hook_id: str | None = None,
        limit: int = 100,
    ) -> list[DeliveryLog]:
        """List delivery logs, newest first.

        Args:
            hook_id: Only return logs for this hook.
            limit: Maximum entries to return.

        Returns:
            List of DeliveryLog sorted by created_at (newest first).
        """
        scroll_filter = None
        if hook_id is not None:
            scroll_filter = models.Filter(
                must=[
                    models.FieldCondition(
                        key="hook_id",
                        match=models.MatchValue(value=hook_id),
                    )
                ]
            )

        payloads = await self._scroll_all("deliveries", scroll_filter)
        deliveries: list[DeliveryLog] = [self._payload_to_model(p, DeliveryLog) for p in payloads]
        deliveries.sort(key=lambda d: d.created_at, reverse=True)
        return deliveries[:limit]

    async def claim_due_retries(
        self,
        now: datetime,
        limit: int,
        lease: timedelta,
    ) -> list[DeliveryLog]:
        """Claim retrying deliveries whose next_retry_at has passed.

        Selection and claim happen under the write lock, so two overlapping
        sweeps never receive the same delivery. Claiming pushes next_retry_at
        to the lease deadline: a claimed delivery is no longer due, and if the
        claimant dies it becomes due again once the lease expires.

        Args:
            now: Current time.
            limit: Maximum deliveries to claim.
            lease: How long the claim holds.

        Returns:
            Claimed deliveries, most overdue first.
        """
        due_filter = models.Filter(
            must=[
                models.FieldCondition(
                    key="status",
                    match=models.MatchValue(value="retrying"),
                ),
                models.FieldCondition(
                    key="next_retry_ts",
                    range=models.Range(lte=now.timestamp()),
                ),
            ]
        )

        async with self._write_lock:
            payloads = await self._scroll_all("deliveries", due_filter)
            due: list[DeliveryLog] = [self._payload_to_model(p, DeliveryLog) for p in payloads]
            due = [d for d in due if d.next_retry_at is not None and d.next_retry_at <= now]
            due.sort(key=lambda d: d.next_retry_at)  # type: ignore[arg-type, return-value]
            claimed = due[:limit]
            if not claimed:
                return []

            deadline = now + lease
            for delivery in claimed:
                delivery.claimed_until = deadline
                delivery.next_retry_at = deadline
                delivery.updated_at = now

            await self._set_payload(
                "deliveries",
                [d.id for d in claimed],
                {
                    "claimed_until": deadline.isoformat(),
                    "next_retry_at": deadline.isoformat(),
                    "next_retry_ts": to_timestamp(deadline),
                    "updated_at": now.isoformat(),
                },
            )

        logger.debug("Claimed %d due retries", len(claimed))
        return claimed

    async def count_failed_deliveries(self, hook_id: str, since: datetime) -> int:
        """Count failed deliveries for a hook created at or after `since`."""
        result = await self.client.count(
            collection_name=self._collection_name("deliveries"),
            count_filter=models.Filter(
                must=[
                    models.FieldCondition(
                        key="hook_id",
                        match=models.MatchValue(value=hook_id),
                    ),
                    models.FieldCondition(
                        key="status",
                        match=models.MatchValue(value="failed"),
                    ),
                    models.FieldCondition(
                        key="created_ts",
                        range=models.Range(gte=since.timestamp()),
                    ),
                ]
            ),
            exact=True,
        )
        return int(result.count)

    async def purge_expired_deliveries(self, before: datetime) -> int:
        """Delete delivery logs created before `before`, whatever their status.

        Returns:
            Number of logs deleted.
        """
        expired_filter = models.Filter(
            must=[
                models.FieldCondition(
                    key="created_ts",
                    range=models.Range(lt=before.timestamp()),
                )
            ]
        )
        collection = self._collection_name("deliveries")

        async with self._write_lock:
            result = await self.client.count(
                collection_name=collection,
                count_filter=expired_filter,
                exact=True,
            )
            count = int(result.count)
            if count:
                await self.client.delete(
                    collection_name=collection,
                    points_selector=models.FilterSelector(filter=expired_filter),
                )

        if count:
            logger.info("Purged %d expired delivery logs", count)
        return count
