"""hookrelay data models."""

from .base import Clock, generate_id, utc_now
from .delivery import (
    TERMINAL_STATUSES,
    DeliveryLog,
    DeliveryStatus,
    HookPayload,
    TestDeliveryResult,
    truncate,
)
from .hook import (
    ALL_EVENT_TYPES,
    EventType,
    Hook,
    HookCreate,
    HookStats,
    HookStatus,
    HookUpdate,
)

__all__ = [
    "ALL_EVENT_TYPES",
    "Clock",
    "DeliveryLog",
    "DeliveryStatus",
    "EventType",
    "Hook",
    "HookCreate",
    "HookPayload",
    "HookStats",
    "HookStatus",
    "HookUpdate",
    "TERMINAL_STATUSES",
    "TestDeliveryResult",
    "generate_id",
    "truncate",
    "utc_now",
]
