"""Configuration management for hookrelay."""

import logging
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

# Upper bound of a hook's per-attempt timeout, in milliseconds.
MAX_HOOK_TIMEOUT_MS = 60_000


class Settings(BaseSettings):
    """hookrelay settings loaded from environment variables.

    All variables use the ``HOOKRELAY_`` prefix, e.g. ``HOOKRELAY_QDRANT_URL``.
    Set ``HOOKRELAY_QDRANT_URL=:memory:`` to run against an in-process store.
    """

    env: Literal["development", "production", "test"] = Field(
        default="development",
        description="Deployment environment",
    )

    # Storage
    qdrant_url: str = Field(
        default="http://localhost:6333",
        description="Qdrant server URL, or ':memory:' for an in-process store",
    )
    qdrant_api_key: str | None = Field(
        default=None,
        description="Qdrant API key",
    )
    collection_prefix: str = Field(
        default="hookrelay",
        description="Prefix for Qdrant collection names",
    )
    storage_max_scroll_limit: int = Field(
        default=10000,
        ge=100,
        le=100000,
        description=(
            "Maximum records fetched by a single list operation. "
            "Bounds memory use when scanning hooks or delivery logs."
        ),
    )

    # Delivery
    max_concurrent_deliveries: int = Field(
        default=10,
        ge=1,
        le=500,
        description="Maximum HTTP deliveries in flight at once",
    )
    response_body_limit: int = Field(
        default=1000,
        ge=0,
        le=100000,
        description="UTF-8 bytes of the response body kept on a delivery log",
    )

    # Retry sweeper
    retry_interval_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Period between retry sweeps",
    )
    retry_batch_size: int = Field(
        default=10,
        ge=1,
        le=1000,
        description="Maximum deliveries claimed by a single sweep",
    )
    retry_backoff_base: float = Field(
        default=2.0,
        gt=1.0,
        description="Exponential backoff base; delay is base ** attempts units",
    )
    retry_backoff_unit_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Length of one backoff unit in seconds",
    )
    retry_claim_ttl_seconds: float = Field(
        default=300.0,
        gt=0,
        description=(
            "Lease held on a claimed retry. If the process dies mid-delivery "
            "the row becomes eligible again once the lease expires."
        ),
    )

    # Circuit breaker
    breaker_failure_threshold: int = Field(
        default=10,
        ge=1,
        description="Failed deliveries within the window that deactivate a hook",
    )
    breaker_window_hours: float = Field(
        default=24.0,
        gt=0,
        description="Rolling window for the circuit breaker",
    )

    # Retention
    delivery_retention_days: int = Field(
        default=30,
        ge=1,
        description="Delivery logs older than this are purged regardless of status",
    )
    purge_interval_seconds: float = Field(
        default=3600.0,
        gt=0,
        description="How often the sweeper purges expired delivery logs",
    )

    # Management API
    logs_max_limit: int = Field(
        default=500,
        ge=1,
        le=10000,
        description="Maximum delivery logs returned by one logs request",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format",
    )

    # CORS Configuration
    cors_enabled: bool = Field(
        default=True,
        description="Enable CORS middleware",
    )
    cors_allow_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description="List of allowed CORS origins",
    )
    cors_allow_methods: list[str] = Field(
        default_factory=lambda: ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        description="Allowed HTTP methods for CORS requests",
    )
    cors_allow_headers: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Allowed headers for CORS requests",
    )
    cors_allow_credentials: bool = Field(
        default=False,
        description=(
            "Allow credentials in CORS requests. "
            "Cannot be True when cors_allow_origins is ['*']."
        ),
    )

    model_config = {
        "env_prefix": "HOOKRELAY_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
    }

    @model_validator(mode="after")
    def validate_claim_lease(self) -> "Settings":
        """A claimed retry must stay leased for longer than any single attempt."""
        if self.retry_claim_ttl_seconds * 1000 <= MAX_HOOK_TIMEOUT_MS:
            raise ValueError(
                f"retry_claim_ttl_seconds ({self.retry_claim_ttl_seconds}) must exceed "
                f"the maximum hook timeout of {MAX_HOOK_TIMEOUT_MS // 1000}s"
            )
        return self

    @model_validator(mode="after")
    def validate_cors(self) -> "Settings":
        """Reject credentialed CORS with wildcard origins."""
        if self.cors_allow_credentials and "*" in self.cors_allow_origins:
            raise ValueError(
                "cors_allow_credentials cannot be enabled when cors_allow_origins contains '*'"
            )
        if self.env == "production" and "*" in self.cors_allow_origins and self.cors_enabled:
            logger.warning("Wildcard CORS origins enabled in production")
        return self

    @property
    def uses_memory_store(self) -> bool:
        """Whether storage runs in Qdrant's in-process mode."""
        return self.qdrant_url == ":memory:"


# Global settings instance
settings = Settings()
