"""Base helpers shared by hookrelay models."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from uuid import uuid4

# Source of "now" for anything time-dependent. Injected so tests can
# drive backoff, sweeping and the circuit breaker deterministically.
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def generate_id(prefix: str) -> str:
    """Generate a unique ID with a type prefix, e.g. ``hook_1a2b...``."""
    return f"{prefix}_{uuid4().hex[:16]}"
