"""Hook registry: validated CRUD over hook definitions."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, TypeVar

import pydantic
from pydantic import BaseModel

from hookrelay.exceptions import NotFoundError, ValidationError
from hookrelay.logging import get_logger
from hookrelay.models import Hook, HookCreate, HookUpdate

if TYPE_CHECKING:
    from hookrelay.storage import HookStorage

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _validate(model: type[ModelT], data: ModelT | Mapping[str, Any]) -> ModelT:
    """Coerce a mapping into an input model, raising our ValidationError."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(dict(data))
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or "hook"
        raise ValidationError(field, first["msg"]) from e


class HookRegistry:
    """Owns hook definitions.

    Every operation is a single-record read or write; there are no
    cross-hook invariants.
    """

    def __init__(self, storage: HookStorage) -> None:
        self._storage = storage

    async def create(self, spec: HookCreate | Mapping[str, Any]) -> Hook:
        """Register a new hook.

        Raises:
            ValidationError: Bad URL, empty event set or out-of-range policy.
        """
        hook = _validate(HookCreate, spec).to_hook()
        await self._storage.store_hook(hook)
        logger.info("Hook created", hook_id=hook.id, hook_name=hook.name, events=hook.events)
        return hook

    async def get(self, hook_id: str) -> Hook | None:
        return await self._storage.get_hook(hook_id)

    async def require(self, hook_id: str) -> Hook:
        """Get a hook or raise NotFoundError."""
        hook = await self._storage.get_hook(hook_id)
        if hook is None:
            raise NotFoundError("hook", hook_id)
        return hook

    async def list_all(self) -> list[Hook]:
        return await self._storage.list_hooks()

    async def list_active_by_event(self, event: str) -> list[Hook]:
        return await self._storage.get_active_hooks_for_event(event)

    async def update(self, hook_id: str, patch: HookUpdate | Mapping[str, Any]) -> Hook | None:
        """Merge a partial update into a hook.

        Returns:
            The updated hook, or None if it does not exist.
        """
        changes = _validate(HookUpdate, patch).changes()
        if not changes:
            return await self._storage.get_hook(hook_id)
        hook = await self._storage.update_hook_fields(hook_id, changes)
        if hook is not None:
            logger.info("Hook updated", hook_id=hook_id, fields=sorted(changes))
        return hook

    async def delete(self, hook_id: str) -> bool:
        deleted = await self._storage.delete_hook(hook_id)
        if deleted:
            logger.info("Hook deleted", hook_id=hook_id)
        return deleted

    async def activate(self, hook_id: str) -> Hook | None:
        return await self._storage.set_hook_status(hook_id, "active")

    async def deactivate(self, hook_id: str) -> Hook | None:
        return await self._storage.set_hook_status(hook_id, "inactive")
