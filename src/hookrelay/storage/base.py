"""Base storage class and helpers.

Contains client lifecycle, collection management, and payload conversion
shared by the hook registry and delivery log mixins.
"""

from __future__ import annotations

import asyncio
import hashlib
from datetime import datetime
from typing import Any, TypeVar
from urllib.parse import urlsplit

from pydantic import BaseModel
from qdrant_client import AsyncQdrantClient, models

from hookrelay.config import settings
from hookrelay.exceptions import ConfigurationError, StorageError

from .retry import qdrant_retry

ModelT = TypeVar("ModelT", bound=BaseModel)

# Collection names by record type
COLLECTION_NAMES = {
    "hooks": "hooks",
    "deliveries": "deliveries",
}

# Records carry no embeddings; every point gets a single zero component.
VECTOR_SIZE = 1
ZERO_VECTOR = [0.0] * VECTOR_SIZE

# Payload indexes by record type: (field, schema)
PAYLOAD_INDEXES: dict[str, list[tuple[str, models.PayloadSchemaType]]] = {
    "hooks": [
        ("status", models.PayloadSchemaType.KEYWORD),
        ("events", models.PayloadSchemaType.KEYWORD),
    ],
    "deliveries": [
        ("hook_id", models.PayloadSchemaType.KEYWORD),
        ("status", models.PayloadSchemaType.KEYWORD),
        ("created_ts", models.PayloadSchemaType.FLOAT),
        ("next_retry_ts", models.PayloadSchemaType.FLOAT),
    ],
}

# Denormalized numeric copies of datetime fields, used for range filters.
TIMESTAMP_FIELDS = {
    "created_at": "created_ts",
    "next_retry_at": "next_retry_ts",
}


def to_timestamp(value: datetime | None) -> float | None:
    return value.timestamp() if value is not None else None


class StorageBase:
    """Base class for hookrelay storage.

    Provides:
    - Client initialization and lifecycle management
    - Collection creation and indexing
    - Point ID conversion
    - Payload serialization/deserialization
    - A write lock serializing conditional updates within this process
    """

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        prefix: str | None = None,
        max_scroll_limit: int | None = None,
    ) -> None:
        """Initialize storage client.

        Args:
            url: Qdrant server URL or ":memory:". Defaults to settings.qdrant_url.
            api_key: Qdrant API key. Defaults to settings.qdrant_api_key.
            prefix: Collection name prefix. Defaults to settings.collection_prefix.
            max_scroll_limit: Cap on records returned by list operations.
        """
        self._url = url or settings.qdrant_url
        self._api_key = api_key or settings.qdrant_api_key
        self._prefix = prefix or settings.collection_prefix
        self._max_scroll_limit = max_scroll_limit or settings.storage_max_scroll_limit
        self._client: AsyncQdrantClient | None = None
        self._collections_initialized = False
        self._write_lock = asyncio.Lock()

    @property
    def client(self) -> AsyncQdrantClient:
        """Get the Qdrant client, raising if not initialized."""
        if self._client is None:
            raise StorageError("Storage not initialized. Call initialize() first.")
        return self._client

    async def initialize(self) -> None:
        """Initialize the storage client and ensure collections exist.

        Raises:
            ConfigurationError: If the URL is neither ":memory:" nor http(s).
        """
        if self._url == ":memory:":
            self._client = AsyncQdrantClient(location=":memory:")
        else:
            parts = urlsplit(self._url)
            if parts.scheme not in ("http", "https") or not parts.hostname:
                raise ConfigurationError(
                    f"qdrant_url must be ':memory:' or an http(s) URL, got {self._url!r}"
                )
            self._client = AsyncQdrantClient(url=self._url, api_key=self._api_key)
        await self._ensure_collections()
        self._collections_initialized = True

    async def close(self) -> None:
        """Close the storage client connection."""
        if self._client is not None:
            await self._client.close()
            self._client = None
            self._collections_initialized = False

    def _collection_name(self, record_type: str) -> str:
        """Get full collection name with prefix."""
        suffix = COLLECTION_NAMES.get(record_type, record_type)
        return f"{self._prefix}_{suffix}"

    @staticmethod
    def _key_to_point_id(key: str) -> str:
        """Convert a record ID to a valid Qdrant point ID.

        Qdrant requires point IDs to be UUIDs or unsigned integers.
        We hash the key to create a deterministic UUID-format string.
        """
        h = hashlib.sha256(key.encode()).hexdigest()[:32]
        return f"{h[:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:32]}"

    @qdrant_retry
    async def _ensure_collections(self) -> None:
        """Ensure all required collections exist with their payload indexes."""
        collections = await self.client.get_collections()
        existing = {c.name for c in collections.collections}

        for record_type in COLLECTION_NAMES:
            collection_name = self._collection_name(record_type)
            if collection_name in existing:
                continue

            await self.client.create_collection(
                collection_name=collection_name,
                vectors_config=models.VectorParams(
                    size=VECTOR_SIZE,
                    distance=models.Distance.DOT,
                ),
            )
            for field_name, schema in PAYLOAD_INDEXES[record_type]:
                await self.client.create_payload_index(
                    collection_name=collection_name,
                    field_name=field_name,
                    field_schema=schema,
                )

    def _model_to_payload(self, record: BaseModel) -> dict[str, Any]:
        """Convert a model to a Qdrant payload with numeric timestamp copies."""
        data = record.model_dump(mode="json")
        for field_name, ts_field in TIMESTAMP_FIELDS.items():
            if field_name in data:
                data[ts_field] = to_timestamp(getattr(record, field_name))
        return data

    def _payload_to_model(self, payload: dict[str, Any], model_class: type[ModelT]) -> ModelT:
        """Convert a Qdrant payload back to a model."""
        data = dict(payload)
        for ts_field in TIMESTAMP_FIELDS.values():
            data.pop(ts_field, None)
        return model_class.model_validate(data)

    @qdrant_retry
    async def _upsert(self, record_type: str, record_id: str, record: BaseModel) -> None:
        await self.client.upsert(
            collection_name=self._collection_name(record_type),
            points=[
                models.PointStruct(
                    id=self._key_to_point_id(record_id),
                    vector=ZERO_VECTOR,
                    payload=self._model_to_payload(record),
                )
            ],
        )

    @qdrant_retry
    async def _retrieve(self, record_type: str, record_id: str) -> dict[str, Any] | None:
        results = await self.client.retrieve(
            collection_name=self._collection_name(record_type),
            ids=[self._key_to_point_id(record_id)],
            with_payload=True,
        )
        if not results or results[0].payload is None:
            return None
        return dict(results[0].payload)

    @qdrant_retry
    async def _set_payload(
        self, record_type: str, record_ids: list[str], values: dict[str, Any]
    ) -> None:
        """Write only the given payload keys, leaving the rest of each record intact."""
        await self.client.set_payload(
            collection_name=self._collection_name(record_type),
            payload=values,
            points=[self._key_to_point_id(record_id) for record_id in record_ids],
        )

    @qdrant_retry
    async def _scroll_all(
        self,
        record_type: str,
        scroll_filter: models.Filter | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch every matching payload, paging up to the scroll limit."""
        collection = self._collection_name(record_type)
        payloads: list[dict[str, Any]] = []
        offset: Any = None

        while len(payloads) < self._max_scroll_limit:
            page_size = min(256, self._max_scroll_limit - len(payloads))
            points, offset = await self.client.scroll(
                collection_name=collection,
                scroll_filter=scroll_filter,
                limit=page_size,
                offset=offset,
                with_payload=True,
            )
            payloads.extend(dict(p.payload) for p in points if p.payload is not None)
            if offset is None:
                break

        return payloads
