"""Test doubles shared across the suite."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import httpx

EPOCH = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


class FakeClock:
    """Controllable clock for backoff, sweeping and breaker tests."""

    def __init__(self, start: datetime = EPOCH) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class Receiver:
    """Records incoming requests and answers with scripted status codes.

    Once the script runs out every request is answered with ``default``.

    Example:
        ```python
        receiver = Receiver(500, 500)  # fail twice, then 200
        dispatcher = HookDispatcher(storage, transport=receiver.transport)
        ```
    """

    def __init__(self, *statuses: int, default: int = 200, body: str = "ok") -> None:
        self.script = list(statuses)
        self.default = default
        self.body = body
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        code = self.script.pop(0) if self.script else self.default
        return httpx.Response(code, text=self.body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    @property
    def bodies(self) -> list[bytes]:
        return [r.content for r in self.requests]
