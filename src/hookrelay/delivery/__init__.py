"""Hook delivery engine.

Provides HMAC-signed hook delivery with exponential backoff retry, a
background retry sweeper and a failure-rate circuit breaker.

Example:
    ```python
    from hookrelay.delivery import HookDispatcher, RetrySweeper

    dispatcher = HookDispatcher(storage)
    sweeper = RetrySweeper(storage, dispatcher)
    sweeper.start()

    await dispatcher.trigger("message.sent", {"message_id": "m_1"}, group_id="G1")
    ```
"""

from .breaker import CircuitBreaker
from .dispatcher import AttemptResult, HookDispatcher, is_reserved_header
from .signing import SIGNATURE_HEADER, compute_signature, verify_signature
from .sweeper import RetrySweeper

__all__ = [
    "SIGNATURE_HEADER",
    "AttemptResult",
    "CircuitBreaker",
    "HookDispatcher",
    "RetrySweeper",
    "compute_signature",
    "is_reserved_header",
    "verify_signature",
]
