"""Delivery models: the wire payload and the per-trigger delivery log.

A DeliveryLog is created once per (trigger, hook) pair and mutated by
every attempt, first or retry. Its payload is frozen at trigger time and
retries resend those exact bytes.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from hookrelay.exceptions import InvalidTransitionError

from .base import generate_id, utc_now

# Delivery status
DeliveryStatus = Literal["pending", "retrying", "success", "failed"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"success", "failed"})


def truncate(text: str | None, limit: int) -> str | None:
    """Bound a response body to ``limit`` UTF-8 bytes before it is stored.

    A multi-byte character split by the cut is dropped whole.
    """
    if text is None:
        return None
    encoded = text.encode("utf-8")
    if len(encoded) <= limit:
        return text
    return encoded[:limit].decode("utf-8", errors="ignore")


class HookPayload(BaseModel):
    """JSON body POSTed to a hook.

    Attributes:
        event: Event tag.
        timestamp: When the event was triggered (ISO-8601 on the wire).
        data: Event-specific payload supplied by the producer.
    """

    model_config = ConfigDict(extra="forbid")

    event: str
    timestamp: datetime = Field(default_factory=utc_now)
    data: dict[str, Any] = Field(default_factory=dict)

    def to_json(self) -> str:
        """Serialize to the compact body that is sent and signed."""
        return json.dumps(
            {
                "event": self.event,
                "timestamp": self.timestamp.isoformat(),
                "data": self.data,
            },
            separators=(",", ":"),
            default=str,
        )


class DeliveryLog(BaseModel):
    """Record of one trigger's delivery to one hook.

    Attributes:
        id: Unique identifier for this delivery.
        hook_id: Owning hook (lookup only; the hook may be deleted).
        event: Event tag being delivered.
        payload: Serialized JSON body, frozen at trigger time.
        status: pending, retrying, success or failed.
        attempts: Attempts made so far (1-indexed).
        response_status: HTTP status of the most recent attempt.
        response_body: Truncated response body of the most recent attempt.
        error_message: Failure reason of the most recent attempt.
        duration_ms: Duration of the most recent attempt.
        next_retry_at: When the next retry is due (only while retrying).
        claimed_until: Lease deadline set when a sweeper claims the retry.
        created_at: When the delivery was first attempted.
        completed_at: When the delivery reached success or failed.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("dlv"))
    hook_id: str = Field(description="ID of the owning hook")
    event: str = Field(description="Event tag")
    payload: str = Field(description="Frozen JSON body")
    status: DeliveryStatus = Field(default="pending")
    attempts: int = Field(default=1, ge=1)
    response_status: int | None = None
    response_body: str | None = None
    error_message: str | None = None
    duration_ms: int | None = None
    next_retry_at: datetime | None = None
    claimed_until: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def payload_data(self) -> dict[str, Any]:
        """The frozen payload decoded back into a dict."""
        return json.loads(self.payload)  # type: ignore[no-any-return]

    def _guard(self, target: str) -> None:
        if self.is_terminal:
            raise InvalidTransitionError(self.status, target)

    def record_response(
        self,
        status_code: int | None,
        body: str | None,
        duration_ms: int,
        limit: int = 1000,
    ) -> None:
        """Store metadata of the most recent attempt."""
        self.response_status = status_code
        self.response_body = truncate(body, limit)
        self.duration_ms = duration_ms

    def mark_success(self, at: datetime) -> DeliveryLog:
        """Mark delivery as successful."""
        self._guard("success")
        self.status = "success"
        self.error_message = None
        self.next_retry_at = None
        self.claimed_until = None
        self.completed_at = at
        self.updated_at = at
        return self

    def mark_retrying(self, next_retry_at: datetime, error: str, at: datetime) -> DeliveryLog:
        """Schedule another attempt."""
        self._guard("retrying")
        self.status = "retrying"
        self.error_message = error
        self.next_retry_at = next_retry_at
        self.claimed_until = None
        self.updated_at = at
        return self

    def mark_failed(self, error: str, at: datetime) -> DeliveryLog:
        """Mark delivery as failed (no more retries)."""
        self._guard("failed")
        self.status = "failed"
        self.error_message = error
        self.next_retry_at = None
        self.claimed_until = None
        self.completed_at = at
        self.updated_at = at
        return self


class TestDeliveryResult(BaseModel):
    """Outcome of a manual test delivery."""

    __test__ = False  # not a pytest test class

    success: bool
    status_code: int | None = None
    response_time_ms: int | None = None
    error: str | None = None


__all__ = [
    "DeliveryLog",
    "DeliveryStatus",
    "HookPayload",
    "TERMINAL_STATUSES",
    "TestDeliveryResult",
    "truncate",
]
