"""
Enrichment stage configuration.

Concurrency, rate limiting, retry, and claim-queue knobs for the sentiment
and summary jobs. All settings can be overridden via ENRICHMENT_*
environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EnrichmentConfig(BaseSettings):
    """
    Configuration for the enrichment processor and jobs.

    Example:
        ENRICHMENT_CONCURRENCY=5
        ENRICHMENT_REQUESTS_PER_MINUTE=0
        ENRICHMENT_SENTIMENT_BATCH_SIZE=25
    """

    model_config = SettingsConfigDict(
        env_prefix="ENRICHMENT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Parallelism
    concurrency: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Records enriched in parallel within one batch",
    )
    requests_per_minute: int = Field(
        default=15,
        ge=0,
        description="Model calls per minute across the batch (0 disables the limiter)",
    )

    # Per-call timeout and retry
    request_timeout_seconds: float = Field(
        default=30.0,
        ge=5.0,
        le=120.0,
        description="Timeout for a single model call",
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Retries after the first attempt for retryable model errors",
    )
    retry_base_delay: float = Field(default=1.0, ge=0.0, description="First backoff delay (s)")
    retry_multiplier: float = Field(default=2.0, ge=1.0, description="Backoff growth factor")
    retry_max_delay: float = Field(default=30.0, ge=1.0, description="Backoff ceiling (s)")
    retry_jitter: float = Field(
        default=0.1,
        ge=0.0,
        le=0.5,
        description="± fraction of each delay added as jitter",
    )

    # Circuit breaker
    circuit_failure_threshold: int = Field(
        default=5,
        ge=1,
        description="Consecutive failures before opening circuit",
    )
    circuit_recovery_timeout: float = Field(
        default=60.0,
        ge=5.0,
        description="Seconds before a half-open recovery attempt",
    )

    # Claim queue
    sentiment_batch_size: int = Field(default=10, ge=1, le=200)
    summary_batch_size: int = Field(default=10, ge=1, le=200)
    max_attempts: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Claims per record before a stuck claim fails it for replay",
    )
    stuck_timeout_minutes: int = Field(
        default=30,
        ge=1,
        description="Minutes in processing before a claim counts as abandoned",
    )

    # Failure ledger
    failure_retention_days: int = Field(
        default=30,
        ge=1,
        description="Age after which resolved failures are deleted",
    )
    content_preview_chars: int = Field(
        default=500,
        ge=50,
        description="Content stored in failure payloads",
    )
