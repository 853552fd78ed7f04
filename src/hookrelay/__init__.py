"""hookrelay: signed outbound hooks with retries.

Event producers call ``trigger`` and move on; hookrelay matches the event
against registered hooks, POSTs an HMAC-signed JSON body to each, and
retries failures with exponential backoff from a background sweeper.
Hooks that keep failing are deactivated by a circuit breaker.

Quick Start:
    from hookrelay.service import HookService

    async with HookService.create() as hooks:
        hooks.start()
        await hooks.registry.create({
            "name": "alerts",
            "url": "https://alerts.example.com/in",
            "events": ["error.occurred"],
            "secret": "s3cret",
        })
        await hooks.trigger("error.occurred", {"message": "disk full"})

Delivery lifecycle:
    - pending: first attempt in flight
    - retrying: waiting for the sweeper to retry
    - success / failed: terminal
"""

__version__ = "0.1.0"

# Configuration
from .config import Settings, settings

# Exceptions
from .exceptions import (
    ConfigurationError,
    HookRelayError,
    InvalidTransitionError,
    NotFoundError,
    StorageError,
    ValidationError,
)

# Logging
from .logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)

# Models
from .models import (
    ALL_EVENT_TYPES,
    DeliveryLog,
    EventType,
    Hook,
    HookCreate,
    HookPayload,
    HookStats,
    HookUpdate,
    TestDeliveryResult,
)

# Service
from .service import HookRegistry, HookService

__all__ = [
    "ALL_EVENT_TYPES",
    "ConfigurationError",
    "DeliveryLog",
    "EventType",
    "Hook",
    "HookCreate",
    "HookPayload",
    "HookRegistry",
    "HookRelayError",
    "HookService",
    "HookStats",
    "HookUpdate",
    "InvalidTransitionError",
    "NotFoundError",
    "Settings",
    "StorageError",
    "TestDeliveryResult",
    "ValidationError",
    "__version__",
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
    "settings",
]
