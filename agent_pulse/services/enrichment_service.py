"""
Enrichment jobs - one bounded pass over a claim queue per invocation.

Each pass recovers stuck rows, claims a batch, runs it through the
EnrichmentProcessor, and reports the remaining queue depth. Jobs are
finite; a scheduler calls them repeatedly.
"""

import time
from dataclasses import dataclass, field
from typing import Any

import structlog

from agent_pulse.config.settings import Settings, get_settings
from agent_pulse.enrichment.circuit_breaker import GenericCircuitBreaker
from agent_pulse.enrichment.config import EnrichmentConfig
from agent_pulse.enrichment.errors import ErrorCode, is_service_fault
from agent_pulse.enrichment.gemini_client import GeminiClient
from agent_pulse.enrichment.ollama_client import OllamaClient
from agent_pulse.enrichment.processor import (
    Enricher,
    EnrichmentProcessor,
    SentimentEnricher,
    SummaryEnricher,
)
from agent_pulse.ingestion.schemas import EnrichmentKind
from agent_pulse.ledger.failures import FailureLedger, FailureStage
from agent_pulse.observability.metrics import MetricsCollector, get_metrics
from agent_pulse.queues.claim_queue import SENTIMENT_QUEUE, SUMMARY_QUEUE, ClaimQueue
from agent_pulse.storage.database import Database
from agent_pulse.storage.repository import RecordRepository

logger = structlog.get_logger(__name__)


@dataclass
class EnrichmentJobStats:
    """Outcome of one job pass."""

    kind: str
    stuck_reset: int = 0
    stuck_expired: int = 0
    claimed: int = 0
    processed: int = 0
    failed: int = 0
    skipped: int = 0
    total_tokens: int = 0
    average_latency_ms: float = 0.0
    queue_depth: int = 0
    elapsed_ms: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "stuck_reset": self.stuck_reset,
            "stuck_expired": self.stuck_expired,
            "claimed": self.claimed,
            "processed": self.processed,
            "failed": self.failed,
            "skipped": self.skipped,
            "total_tokens": self.total_tokens,
            "average_latency_ms": round(self.average_latency_ms, 1),
            "queue_depth": self.queue_depth,
            "elapsed_ms": self.elapsed_ms,
            "errors": list(self.errors),
        }


@dataclass
class StuckRecovery:
    """Rows returned to pending and rows failed by one recovery sweep."""

    reset_ids: list[int] = field(default_factory=list)
    expired_ids: list[int] = field(default_factory=list)


async def recover_stuck(
    queue: ClaimQueue,
    failures: FailureLedger,
    timeout_minutes: int,
    max_attempts: int,
    metrics: MetricsCollector | None = None,
) -> StuckRecovery:
    """
    Sweep one queue for claims older than ``timeout_minutes``.

    Rows with claims left go back to pending. Rows that have used all
    ``max_attempts`` claims are failed and entered in the failure ledger,
    where replay tooling can find them.
    """
    metrics = metrics or get_metrics()
    kind = queue.spec.kind.value

    expired = await queue.expire_stuck(timeout_minutes, max_attempts)
    for record_id, attempt_count in expired:
        await failures.record_failure(
            record_id,
            queue.spec.kind,
            FailureStage.STUCK,
            ErrorCode.ATTEMPTS_EXHAUSTED.value,
            f"Claim abandoned after {attempt_count} of {max_attempts} attempts",
            payload={"attempt_count": attempt_count, "timeout_minutes": timeout_minutes},
        )
    reset_ids = await queue.reset_stuck(timeout_minutes, max_attempts=max_attempts)

    if expired:
        metrics.record_stuck_expired(kind, len(expired))
    if reset_ids:
        metrics.record_stuck_resets(kind, len(reset_ids))
    return StuckRecovery(reset_ids=reset_ids, expired_ids=[record_id for record_id, _ in expired])


class EnrichmentJob:
    """
    One enrichment kind bound to its queue and processor.

    Usage:
        job = build_sentiment_job(db)
        try:
            stats = await job.run()
        finally:
            await job.close()
    """

    def __init__(
        self,
        queue: ClaimQueue,
        processor: EnrichmentProcessor,
        failures: FailureLedger,
        enricher: Enricher | None = None,
        config: EnrichmentConfig | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._queue = queue
        self._processor = processor
        self._failures = failures
        self._enricher = enricher
        self._config = config or EnrichmentConfig()
        self._metrics = metrics or get_metrics()

    @property
    def kind(self) -> EnrichmentKind:
        return self._queue.spec.kind

    def _default_batch_size(self) -> int:
        if self.kind == EnrichmentKind.SENTIMENT:
            return self._config.sentiment_batch_size
        return self._config.summary_batch_size

    async def run(self, batch_size: int | None = None) -> EnrichmentJobStats:
        """Recover stuck rows, claim one batch, and enrich it."""
        kind = self.kind.value
        stats = EnrichmentJobStats(kind=kind)
        start = time.monotonic()

        recovery = await recover_stuck(
            self._queue,
            self._failures,
            self._config.stuck_timeout_minutes,
            self._config.max_attempts,
            metrics=self._metrics,
        )
        stats.stuck_reset = len(recovery.reset_ids)
        stats.stuck_expired = len(recovery.expired_ids)

        records = await self._queue.claim(
            batch_size or self._default_batch_size(),
            max_attempts=self._config.max_attempts,
        )
        stats.claimed = len(records)

        if records:
            result = await self._processor.process(records)
            stats.processed = result.processed
            stats.failed = result.failed
            stats.skipped = result.skipped
            stats.total_tokens = result.total_tokens
            stats.average_latency_ms = result.average_latency_ms
            stats.errors = result.errors
        else:
            logger.info("Nothing to enrich", kind=kind)

        stats.queue_depth = await self._queue.queue_depth()
        self._metrics.set_queue_depth(kind, stats.queue_depth)
        stats.elapsed_ms = int((time.monotonic() - start) * 1000)

        logger.info(
            "Enrichment job complete",
            kind=kind,
            stuck_reset=stats.stuck_reset,
            stuck_expired=stats.stuck_expired,
            claimed=stats.claimed,
            processed=stats.processed,
            failed=stats.failed,
            skipped=stats.skipped,
            queue_depth=stats.queue_depth,
            elapsed_ms=stats.elapsed_ms,
        )
        return stats

    async def close(self) -> None:
        if self._enricher is not None:
            await self._enricher.close()


def _breaker(name: str, config: EnrichmentConfig) -> GenericCircuitBreaker:
    return GenericCircuitBreaker(
        failure_threshold=config.circuit_failure_threshold,
        recovery_timeout=config.circuit_recovery_timeout,
        name=name,
        should_trip=is_service_fault,
    )


def _build_job(
    database: Database,
    queue_spec,
    enricher: Enricher,
    config: EnrichmentConfig,
    metrics: MetricsCollector | None,
) -> EnrichmentJob:
    failures = FailureLedger(database)
    processor = EnrichmentProcessor(
        enricher,
        RecordRepository(database),
        failures,
        config=config,
        metrics=metrics,
    )
    return EnrichmentJob(
        ClaimQueue(database, queue_spec),
        processor,
        failures,
        enricher=enricher,
        config=config,
        metrics=metrics,
    )


def build_sentiment_job(
    database: Database,
    settings: Settings | None = None,
    config: EnrichmentConfig | None = None,
    metrics: MetricsCollector | None = None,
) -> EnrichmentJob:
    """Tweet sentiment job backed by Gemini."""
    settings = settings or get_settings()
    config = config or EnrichmentConfig()
    client = GeminiClient(
        timeout=config.request_timeout_seconds,
        breaker=_breaker("gemini", config),
        settings=settings,
    )
    return _build_job(database, SENTIMENT_QUEUE, SentimentEnricher(client), config, metrics)


def build_summary_job(
    database: Database,
    settings: Settings | None = None,
    config: EnrichmentConfig | None = None,
    metrics: MetricsCollector | None = None,
) -> EnrichmentJob:
    """RSS summary job backed by Ollama."""
    settings = settings or get_settings()
    config = config or EnrichmentConfig()
    client = OllamaClient(
        timeout=config.request_timeout_seconds,
        breaker=_breaker("ollama", config),
        settings=settings,
    )
    return _build_job(database, SUMMARY_QUEUE, SummaryEnricher(client), config, metrics)
