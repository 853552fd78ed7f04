"""Hook storage operations.

Provides methods to store, retrieve, and update hook definitions, plus the
counter updates performed by concurrent deliveries.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from qdrant_client import models

from hookrelay.models import Hook, utc_now

if TYPE_CHECKING:
    from hookrelay.models import HookStatus

logger = logging.getLogger(__name__)


class HookMixin:
    """Mixin providing hook operations for HookStorage.

    This mixin expects the following attributes/methods from the base class:
    - _collection_name(record_type) -> str
    - _key_to_point_id(key) -> str
    - _upsert / _retrieve / _set_payload / _scroll_all
    - _payload_to_model(payload, model_class)
    - _write_lock: asyncio.Lock
    - client: AsyncQdrantClient
    """

    _collection_name: Any
    _key_to_point_id: Any
    _upsert: Any
    _retrieve: Any
    _set_payload: Any
    _scroll_all: Any
    _payload_to_model: Any
    _write_lock: asyncio.Lock
    client: Any

    async def store_hook(self, hook: Hook) -> str:
        """Store a hook definition.

        Args:
            hook: Hook to store.

        Returns:
            The hook ID.
        """
        await self._upsert("hooks", hook.id, hook)
        return hook.id

    async def get_hook(self, hook_id: str) -> Hook | None:
        """Get a hook by ID, or None if it does not exist."""
        payload = await self._retrieve("hooks", hook_id)
        if payload is None:
            return None
        hook: Hook = self._payload_to_model(payload, Hook)
        return hook

    async def list_hooks(
        self,
        status: HookStatus | None = None,
        event: str | None = None,
    ) -> list[Hook]:
        """List hooks, optionally filtered by status and subscribed event.

        Args:
            status: Only return hooks in this status.
            event: Only return hooks subscribed to this event tag.

        Returns:
            Hooks sorted by creation time (oldest first).
        """
        filters: list[models.Condition] = []

        if status is not None:
            filters.append(
                models.FieldCondition(
                    key="status",
                    match=models.MatchValue(value=status),
                )
            )

        if event is not None:
            # Matches when any element of the "events" array equals the tag
            filters.append(
                models.FieldCondition(
                    key="events",
                    match=models.MatchValue(value=event),
                )
            )

        payloads = await self._scroll_all(
            "hooks",
            models.Filter(must=filters) if filters else None,
        )
        hooks: list[Hook] = [self._payload_to_model(p, Hook) for p in payloads]
        hooks.sort(key=lambda h: h.created_at)
        return hooks

    async def get_active_hooks_for_event(self, event: str) -> list[Hook]:
        """Get all active hooks subscribed to an event tag."""
        hooks = await self.list_hooks(status="active", event=event)
        return [h for h in hooks if h.subscribes_to(event)]

    async def update_hook_fields(self, hook_id: str, changes: dict[str, Any]) -> Hook | None:
        """Write a partial update to a hook.

        Only the given keys are written, so concurrent counter updates are
        never overwritten by a stale copy of the record.

        Args:
            hook_id: ID of the hook to update.
            changes: JSON-compatible field values.

        Returns:
            Updated Hook or None if not found.
        """
        async with self._write_lock:
            if await self._retrieve("hooks", hook_id) is None:
                return None
            values = {**changes, "updated_at": utc_now().isoformat()}
            await self._set_payload("hooks", [hook_id], values)

        return await self.get_hook(hook_id)

    async def set_hook_status(
        self,
        hook_id: str,
        status: HookStatus,
        reason: str | None = None,
    ) -> Hook | None:
        """Transition a hook's status, optionally recording why."""
        changes: dict[str, Any] = {"status": status}
        if reason is not None:
            changes["last_error"] = reason
        return await self.update_hook_fields(hook_id, changes)

    async def delete_hook(self, hook_id: str) -> bool:
        """Delete a hook definition.

        Delivery logs referencing the hook are kept until they expire.

        Returns:
            True if deleted, False if not found.
        """
        async with self._write_lock:
            if await self._retrieve("hooks", hook_id) is None:
                return False
            await self.client.delete(
                collection_name=self._collection_name("hooks"),
                points_selector=models.PointIdsList(
                    points=[self._key_to_point_id(hook_id)],
                ),
            )
        return True

    async def record_hook_success(self, hook_id: str, at: datetime) -> bool:
        """Increment success_count and stamp success timestamps.

        Returns:
            False if the hook no longer exists.
        """
        return await self._increment_counter(
            hook_id,
            "success_count",
            {
                "last_triggered_at": at.isoformat(),
                "last_success_at": at.isoformat(),
            },
        )

    async def record_hook_failure(self, hook_id: str, at: datetime, error: str) -> bool:
        """Increment failure_count and stamp failure timestamps and error.

        Returns:
            False if the hook no longer exists.
        """
        return await self._increment_counter(
            hook_id,
            "failure_count",
            {
                "last_triggered_at": at.isoformat(),
                "last_failure_at": at.isoformat(),
                "last_error": error,
            },
        )

    async def _increment_counter(
        self,
        hook_id: str,
        counter: str,
        extra: dict[str, Any],
    ) -> bool:
        # Read-increment-write runs under the lock; only the counter and
        # the given keys are written.
        async with self._write_lock:
            payload = await self._retrieve("hooks", hook_id)
            if payload is None:
                logger.debug("Skipping %s update for deleted hook %s", counter, hook_id)
                return False
            values = {counter: int(payload.get(counter, 0)) + 1, **extra}
            await self._set_payload("hooks", [hook_id], values)
        return True
