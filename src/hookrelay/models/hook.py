"""Hook models: registered HTTP subscribers for domain events.

A hook subscribes to one or more event tags and receives a signed JSON
POST each time a matching event is triggered.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator, model_validator

from .base import generate_id, utc_now

# Event tags that can trigger hooks
EventType = Literal[
    "ticket.created",
    "ticket.updated",
    "ticket.closed",
    "message.sent",
    "user.mentioned",
    "topic.created",
    "topic.linked",
    "error.occurred",
]

# All available event tags for subscription
ALL_EVENT_TYPES: list[EventType] = [
    "ticket.created",
    "ticket.updated",
    "ticket.closed",
    "message.sent",
    "user.mentioned",
    "topic.created",
    "topic.linked",
    "error.occurred",
]

# "failed" is never matched; it is left only by manual reactivation.
HookStatus = Literal["active", "inactive", "failed"]

MIN_RETRIES, MAX_RETRIES = 1, 10
MIN_TIMEOUT_MS, MAX_TIMEOUT_MS = 1_000, 60_000


def _dedupe_events(events: list[EventType]) -> list[EventType]:
    seen: list[EventType] = []
    for event in events:
        if event not in seen:
            seen.append(event)
    return seen


class Hook(BaseModel):
    """A registered hook.

    Attributes:
        id: Unique identifier for this hook.
        name: Operator-facing name.
        description: Optional human-readable description.
        url: Absolute http(s) delivery target.
        events: Event tags this hook subscribes to (never empty).
        status: active, inactive or failed.
        secret: Shared key for HMAC signatures; None means unsigned delivery.
        headers: Extra headers merged into every request.
        max_retries: Retries allowed after the first attempt.
        timeout_ms: Per-attempt HTTP timeout in milliseconds.
        filter_group_ids: Allow-list of group IDs; empty matches all groups.
        filter_ticket_statuses: Allow-list of ticket statuses; empty matches all.
        success_count: Successful delivery attempts.
        failure_count: Failed delivery attempts.
        last_triggered_at: When an attempt last completed.
        last_success_at: When an attempt last succeeded.
        last_failure_at: When an attempt last failed.
        last_error: Most recent failure message.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("hook"))
    name: str = Field(description="Operator-facing name")
    description: str | None = Field(default=None, description="Human-readable description")
    url: str = Field(description="Delivery target URL")
    events: list[EventType] = Field(description="Subscribed event tags")
    status: HookStatus = Field(default="active", description="Hook status")
    secret: str | None = Field(default=None, description="Shared secret for signatures")
    headers: dict[str, str] = Field(default_factory=dict, description="Extra request headers")
    max_retries: int = Field(default=3, ge=MIN_RETRIES, le=MAX_RETRIES)
    timeout_ms: int = Field(default=30_000, ge=MIN_TIMEOUT_MS, le=MAX_TIMEOUT_MS)
    filter_group_ids: list[str] = Field(default_factory=list)
    filter_ticket_statuses: list[str] = Field(default_factory=list)
    success_count: int = Field(default=0, ge=0)
    failure_count: int = Field(default=0, ge=0)
    last_triggered_at: datetime | None = None
    last_success_at: datetime | None = None
    last_failure_at: datetime | None = None
    last_error: str | None = None
    created_by: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000

    def subscribes_to(self, event: str) -> bool:
        """Check if this hook is active and subscribed to the given event."""
        return self.is_active and event in self.events

    def matches(self, group_id: str | None = None, ticket_status: str | None = None) -> bool:
        """Check the filter allow-lists.

        Each configured axis must pass (AND). An axis passes when its list is
        empty or when no value was supplied for it.
        """
        if group_id is not None and self.filter_group_ids:
            if group_id not in self.filter_group_ids:
                return False
        if ticket_status is not None and self.filter_ticket_statuses:
            if ticket_status not in self.filter_ticket_statuses:
                return False
        return True


class HookCreate(BaseModel):
    """Input for registering a hook."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    url: HttpUrl
    events: list[EventType] = Field(min_length=1)
    secret: str | None = Field(default=None, min_length=1)
    headers: dict[str, str] = Field(default_factory=dict)
    max_retries: int = Field(default=3, ge=MIN_RETRIES, le=MAX_RETRIES)
    timeout_ms: int = Field(default=30_000, ge=MIN_TIMEOUT_MS, le=MAX_TIMEOUT_MS)
    filter_group_ids: list[str] = Field(default_factory=list)
    filter_ticket_statuses: list[str] = Field(default_factory=list)
    created_by: str | None = None

    @field_validator("events")
    @classmethod
    def _unique_events(cls, value: list[EventType]) -> list[EventType]:
        return _dedupe_events(value)

    def to_hook(self) -> Hook:
        data = self.model_dump()
        data["url"] = str(self.url)
        return Hook(**data)


class HookUpdate(BaseModel):
    """Partial update for a hook. Only fields that are set are written."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    url: HttpUrl | None = None
    events: list[EventType] | None = Field(default=None, min_length=1)
    status: HookStatus | None = None
    secret: str | None = Field(default=None, min_length=1)
    headers: dict[str, str] | None = None
    max_retries: int | None = Field(default=None, ge=MIN_RETRIES, le=MAX_RETRIES)
    timeout_ms: int | None = Field(default=None, ge=MIN_TIMEOUT_MS, le=MAX_TIMEOUT_MS)
    filter_group_ids: list[str] | None = None
    filter_ticket_statuses: list[str] | None = None

    @field_validator("events")
    @classmethod
    def _unique_events(cls, value: list[EventType] | None) -> list[EventType] | None:
        return _dedupe_events(value) if value is not None else None

    @model_validator(mode="after")
    def _required_fields_not_null(self) -> HookUpdate:
        for key in _NON_NULLABLE:
            if key in self.model_fields_set and getattr(self, key) is None:
                raise ValueError(f"{key} cannot be null")
        return self

    def changes(self) -> dict[str, Any]:
        """Fields explicitly set on this patch, ready for storage."""
        data = self.model_dump(mode="json", exclude_unset=True)
        if self.url is not None:
            data["url"] = str(self.url)
        return data


_NON_NULLABLE = (
    "name",
    "url",
    "events",
    "status",
    "headers",
    "max_retries",
    "timeout_ms",
    "filter_group_ids",
    "filter_ticket_statuses",
)


class HookStats(BaseModel):
    """Delivery statistics for a single hook."""

    total_triggers: int = 0
    success_rate: float = 0.0
    avg_response_time_ms: int = 0
    last_triggered: datetime | None = None
    event_breakdown: dict[str, int] = Field(default_factory=dict)


__all__ = [
    "ALL_EVENT_TYPES",
    "EventType",
    "Hook",
    "HookCreate",
    "HookStats",
    "HookStatus",
    "HookUpdate",
]
