"""FastAPI router for hook management endpoints."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from hookrelay import __version__
from hookrelay.exceptions import NotFoundError
from hookrelay.models import HookCreate, HookStats, HookStatus, HookUpdate, TestDeliveryResult
from hookrelay.service import HookService

from .schemas import (
    DeliveryLogListResponse,
    DeliveryLogResponse,
    EventListResponse,
    HealthResponse,
    HookListResponse,
    HookResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# Service instance (set by app lifespan)
_service: HookService | None = None


def set_service(service: HookService | None) -> None:
    """Set the global service instance."""
    global _service
    _service = service


async def get_service() -> HookService:
    """Dependency to get the HookService instance."""
    if _service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized",
        )
    return _service


ServiceDep = Annotated[HookService, Depends(get_service)]


@router.get("/health", response_model=HealthResponse, tags=["system"])
async def health_check() -> HealthResponse:
    """Check service health."""
    if _service is None:
        return HealthResponse(status="unhealthy", version=__version__, storage_connected=False)
    return HealthResponse(
        status="healthy",
        version=__version__,
        storage_connected=True,
        sweeper_running=_service.sweeper.is_running,
    )


@router.post(
    "/hooks",
    response_model=HookResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["hooks"],
)
async def create_hook(request: HookCreate, service: ServiceDep) -> HookResponse:
    """Register a hook.

    The hook starts ``active`` with zeroed counters. The secret is stored
    but never returned.
    """
    hook = await service.registry.create(request)
    return HookResponse.from_hook(hook)


@router.get("/hooks", response_model=HookListResponse, tags=["hooks"])
async def list_hooks(
    service: ServiceDep,
    hook_status: Annotated[HookStatus | None, Query(alias="status")] = None,
    event: str | None = None,
) -> HookListResponse:
    """List hooks, oldest first, optionally filtered by status or event."""
    hooks = await service.storage.list_hooks(status=hook_status, event=event)
    return HookListResponse(
        hooks=[HookResponse.from_hook(h) for h in hooks],
        count=len(hooks),
    )


@router.get("/hooks/events", response_model=EventListResponse, tags=["hooks"])
async def list_events(service: ServiceDep) -> EventListResponse:
    """List the event tags hooks can subscribe to."""
    return EventListResponse(events=list(service.supported_events()))


@router.get("/hooks/logs", response_model=DeliveryLogListResponse, tags=["deliveries"])
async def recent_logs(
    service: ServiceDep,
    limit: Annotated[int, Query(ge=1)] = 100,
) -> DeliveryLogListResponse:
    """Most recent delivery logs across all hooks, newest first.

    ``limit`` is capped at ``logs_max_limit``.
    """
    logs = await service.get_logs(limit=limit)
    return DeliveryLogListResponse(
        logs=[DeliveryLogResponse.from_log(log) for log in logs],
        count=len(logs),
    )


@router.get("/hooks/{hook_id}", response_model=HookResponse, tags=["hooks"])
async def get_hook(hook_id: str, service: ServiceDep) -> HookResponse:
    hook = await service.registry.require(hook_id)
    return HookResponse.from_hook(hook)


@router.put("/hooks/{hook_id}", response_model=HookResponse, tags=["hooks"])
async def update_hook(hook_id: str, request: HookUpdate, service: ServiceDep) -> HookResponse:
    """Partially update a hook. Fields omitted from the body are unchanged."""
    hook = await service.registry.update(hook_id, request)
    if hook is None:
        raise NotFoundError("hook", hook_id)
    return HookResponse.from_hook(hook)


@router.delete(
    "/hooks/{hook_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["hooks"],
)
async def delete_hook(hook_id: str, service: ServiceDep) -> None:
    """Delete a hook. Its delivery logs stay until retention purges them."""
    if not await service.registry.delete(hook_id):
        raise NotFoundError("hook", hook_id)


@router.post("/hooks/{hook_id}/activate", response_model=HookResponse, tags=["hooks"])
async def activate_hook(hook_id: str, service: ServiceDep) -> HookResponse:
    hook = await service.registry.activate(hook_id)
    if hook is None:
        raise NotFoundError("hook", hook_id)
    return HookResponse.from_hook(hook)


@router.post("/hooks/{hook_id}/deactivate", response_model=HookResponse, tags=["hooks"])
async def deactivate_hook(hook_id: str, service: ServiceDep) -> HookResponse:
    hook = await service.registry.deactivate(hook_id)
    if hook is None:
        raise NotFoundError("hook", hook_id)
    return HookResponse.from_hook(hook)


@router.post("/hooks/{hook_id}/test", response_model=TestDeliveryResult, tags=["hooks"])
async def test_hook(hook_id: str, service: ServiceDep) -> TestDeliveryResult:
    """Send a synthetic ``ticket.created`` payload to the hook.

    No delivery log is written and hook counters do not change.
    """
    result = await service.test_hook(hook_id)
    logger.info("Test delivery to %s: success=%s", hook_id, result.success)
    return result


@router.get(
    "/hooks/{hook_id}/logs",
    response_model=DeliveryLogListResponse,
    tags=["deliveries"],
)
async def hook_logs(
    hook_id: str,
    service: ServiceDep,
    limit: Annotated[int, Query(ge=1)] = 50,
) -> DeliveryLogListResponse:
    logs = await service.get_hook_logs(hook_id, limit=limit)
    return DeliveryLogListResponse(
        logs=[DeliveryLogResponse.from_log(log) for log in logs],
        count=len(logs),
    )


@router.get("/hooks/{hook_id}/stats", response_model=HookStats, tags=["deliveries"])
async def hook_stats(hook_id: str, service: ServiceDep) -> HookStats:
    return await service.get_stats(hook_id)
