"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from hookrelay.models import DeliveryLog, Hook, HookStatus


class HookResponse(BaseModel):
    """A hook as returned by the API.

    The secret itself is never echoed; ``has_secret`` reports whether
    deliveries are signed.
    """

    model_config = ConfigDict(extra="forbid")

    id: str
    name: str
    description: str | None = None
    url: str
    events: list[str]
    status: HookStatus
    has_secret: bool
    headers: dict[str, str] = Field(default_factory=dict)
    max_retries: int
    timeout_ms: int
    filter_group_ids: list[str] = Field(default_factory=list)
    filter_ticket_statuses: list[str] = Field(default_factory=list)
    success_count: int
    failure_count: int
    last_triggered_at: datetime | None = None
    last_success_at: datetime | None = None
    last_failure_at: datetime | None = None
    last_error: str | None = None
    created_by: str | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_hook(cls, hook: Hook) -> HookResponse:
        data = hook.model_dump(exclude={"secret"})
        return cls(**data, has_secret=bool(hook.secret))


class HookListResponse(BaseModel):
    """Response for listing hooks."""

    model_config = ConfigDict(extra="forbid")

    hooks: list[HookResponse]
    count: int


class DeliveryLogResponse(BaseModel):
    """A delivery log as returned by the API.

    Attributes:
        id: Delivery ID.
        hook_id: Owning hook.
        event: Event tag.
        payload: Frozen JSON body exactly as sent.
        status: pending, retrying, success or failed.
        attempts: Attempts made so far.
        response_status: HTTP status of the latest attempt.
        response_body: Truncated body of the latest attempt.
        error_message: Failure reason of the latest attempt.
        duration_ms: Duration of the latest attempt.
        next_retry_at: When the next retry is due.
        created_at: When the delivery was created.
        completed_at: When the delivery became terminal.
    """

    model_config = ConfigDict(extra="forbid")

    id: str
    hook_id: str
    event: str
    payload: str
    status: Literal["pending", "retrying", "success", "failed"]
    attempts: int
    response_status: int | None = None
    response_body: str | None = None
    error_message: str | None = None
    duration_ms: int | None = None
    next_retry_at: datetime | None = None
    created_at: datetime
    completed_at: datetime | None = None

    @classmethod
    def from_log(cls, log: DeliveryLog) -> DeliveryLogResponse:
        return cls(**log.model_dump(exclude={"claimed_until", "updated_at"}))


class DeliveryLogListResponse(BaseModel):
    """Response for listing delivery logs."""

    model_config = ConfigDict(extra="forbid")

    logs: list[DeliveryLogResponse]
    count: int


class EventListResponse(BaseModel):
    """Event tags a hook may subscribe to."""

    model_config = ConfigDict(extra="forbid")

    events: list[str]


class HealthResponse(BaseModel):
    """Response for health check endpoint.

    Attributes:
        status: Service status (healthy, unhealthy).
        version: API version.
        storage_connected: Whether storage is connected.
        sweeper_running: Whether the retry sweeper task is alive.
    """

    model_config = ConfigDict(extra="forbid")

    status: Literal["healthy", "unhealthy"]
    version: str
    storage_connected: bool
    sweeper_running: bool = False


__all__ = [
    "DeliveryLogListResponse",
    "DeliveryLogResponse",
    "EventListResponse",
    "HealthResponse",
    "HookListResponse",
    "HookResponse",
]
