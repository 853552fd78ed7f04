"""Retry policy for Qdrant calls.

Transport failures and 5xx/429 responses are retried with exponential
backoff. Once attempts run out the last error is raised as a StorageError,
so callers deal with one exception type for an unreachable store.
"""

from __future__ import annotations

import logging
from typing import NoReturn

import httpx
from qdrant_client.http.exceptions import UnexpectedResponse
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from hookrelay.exceptions import StorageError

logger = logging.getLogger(__name__)

STORAGE_ATTEMPTS = 3


def is_transient(exc: BaseException) -> bool:
    """Whether a Qdrant failure is worth another attempt."""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, UnexpectedResponse):
        return exc.status_code == 429 or exc.status_code >= 500
    return False


def _operation(retry_state: RetryCallState) -> str:
    return retry_state.fn.__name__ if retry_state.fn else "unknown"


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Qdrant call failed, backing off",
        extra={
            "operation": _operation(retry_state),
            "attempt": retry_state.attempt_number,
            "error": str(exc) or type(exc).__name__,
        },
    )


def _give_up(retry_state: RetryCallState) -> NoReturn:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    raise StorageError(
        f"{_operation(retry_state)} failed after {retry_state.attempt_number} attempts: {exc}"
    ) from exc


qdrant_retry = retry(
    stop=stop_after_attempt(STORAGE_ATTEMPTS),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception(is_transient),
    before_sleep=_log_retry,
    retry_error_callback=_give_up,
)
