"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import pytest
from qdrant_client import AsyncQdrantClient

# Add tests directory to path so utils can be imported
tests_dir = Path(__file__).parent
if str(tests_dir) not in sys.path:
    sys.path.insert(0, str(tests_dir))

from utils import FakeClock  # noqa: E402

from hookrelay.config import Settings  # noqa: E402
from hookrelay.models import Hook  # noqa: E402
from hookrelay.storage import HookStorage  # noqa: E402


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    """Settings for an in-process store and a fast, deterministic backoff."""
    return Settings(
        env="test",
        qdrant_url=":memory:",
        collection_prefix="test",
        retry_backoff_base=2.0,
        retry_backoff_unit_seconds=1.0,
        cors_enabled=False,
    )


@pytest.fixture
async def storage():
    """Create an in-memory storage instance for testing.

    Uses qdrant-client's local mode with in-memory storage.
    """
    store = HookStorage(prefix="test")
    # Override with in-memory client
    store._client = AsyncQdrantClient(location=":memory:")
    await store._ensure_collections()
    store._collections_initialized = True

    yield store

    await store.close()


@pytest.fixture
def make_hook(storage: HookStorage, clock: FakeClock):
    """Factory that stores and returns a hook."""

    async def _make(**overrides: Any) -> Hook:
        fields: dict[str, Any] = {
            "name": "test hook",
            "url": "https://receiver.example.com/hook",
            "events": ["ticket.created"],
            "secret": "test_secret",
            "max_retries": 3,
            "created_at": clock(),
            "updated_at": clock(),
        }
        fields.update(overrides)
        hook = Hook(**fields)
        await storage.store_hook(hook)
        return hook

    return _make
