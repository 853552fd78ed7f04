"""Qdrant storage client for hookrelay.

This module provides the HookStorage class that combines hook and
delivery log operations through mixins.

Example:
    ```python
    from hookrelay.storage import HookStorage

    async with HookStorage(url=":memory:") as storage:
        await storage.store_hook(hook)
        hooks = await storage.get_active_hooks_for_event("ticket.created")
    ```
"""

from __future__ import annotations

from typing import Any

from .base import StorageBase
from .deliveries import DeliveryMixin
from .hooks import HookMixin


class HookStorage(HookMixin, DeliveryMixin, StorageBase):
    """Async Qdrant storage for hooks and delivery logs.

    This class combines functionality from:
    - HookMixin: store_hook, get_hook, list_hooks, update_hook_fields,
      record_hook_success, record_hook_failure, ...
    - DeliveryMixin: log_delivery, update_delivery, claim_due_retries,
      count_failed_deliveries, purge_expired_deliveries, ...

    Conditional updates (counter increments, retry claims) are serialized by
    a per-instance write lock. Run one HookStorage per process.
    """

    async def __aenter__(self) -> HookStorage:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()
