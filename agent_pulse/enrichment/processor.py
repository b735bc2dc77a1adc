"""
Enrichment processor.

Takes records already claimed by a ClaimQueue (status ``processing``),
runs each through an Enricher under a bounded worker pool, and settles
every record exactly once: a persisted result plus the done status, or a
failure-ledger entry plus ``failed``. A failure on one record never aborts
the batch.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Protocol

import structlog

from agent_pulse.enrichment.config import EnrichmentConfig
from agent_pulse.enrichment.errors import EnrichmentServiceError, ErrorCode, is_retryable
from agent_pulse.enrichment.gemini_client import GeminiClient
from agent_pulse.enrichment.ollama_client import OllamaClient
from agent_pulse.enrichment.parsing import parse_sentiment, parse_summary
from agent_pulse.enrichment.prompts import (
    SENTIMENT_SYSTEM_INSTRUCTION,
    build_sentiment_prompt,
    build_summary_prompt,
)
from agent_pulse.enrichment.rate_limit import RequestRateLimiter
from agent_pulse.enrichment.schemas import EnrichmentOutcome, EnrichmentResult
from agent_pulse.ingestion.schemas import EnrichmentKind, NormalizedRecord, Platform, RecordStatus
from agent_pulse.ingestion.status import DONE_STATUS
from agent_pulse.ledger.failures import FailureLedger, FailureStage
from agent_pulse.observability.metrics import MetricsCollector, get_metrics
from agent_pulse.queues.backoff import RetryPolicy
from agent_pulse.storage.repository import RecordRepository

logger = structlog.get_logger(__name__)

_PARSE_CODES = frozenset(
    {ErrorCode.PARSE_ERROR, ErrorCode.INVALID_LABEL, ErrorCode.EMPTY_RESPONSE}
)


class Enricher(Protocol):
    """One model client plus its prompt and reply parser."""

    kind: EnrichmentKind

    @property
    def model_version(self) -> str: ...

    async def enrich(self, record: NormalizedRecord) -> EnrichmentOutcome: ...

    async def close(self) -> None: ...


class SentimentEnricher:
    """Tweet sentiment via Gemini."""

    kind = EnrichmentKind.SENTIMENT

    def __init__(self, client: GeminiClient) -> None:
        self._client = client

    @property
    def model_version(self) -> str:
        return self._client.model_version

    async def enrich(self, record: NormalizedRecord) -> EnrichmentOutcome:
        prompt = build_sentiment_prompt(record.content, record.author_handle, record.language)
        response = await self._client.generate(prompt, SENTIMENT_SYSTEM_INSTRUCTION)
        return parse_sentiment(response.text, token_usage=response.token_usage)

    async def close(self) -> None:
        await self._client.close()


class SummaryEnricher:
    """RSS article summaries via Ollama."""

    kind = EnrichmentKind.SUMMARY

    def __init__(self, client: OllamaClient) -> None:
        self._client = client

    @property
    def model_version(self) -> str:
        return self._client.model_version

    async def enrich(self, record: NormalizedRecord) -> EnrichmentOutcome:
        prompt = build_summary_prompt(record.content, record.title)
        response = await self._client.generate(prompt)
        return parse_summary(response.text, token_usage=response.token_usage)

    async def close(self) -> None:
        await self._client.close()


@dataclass
class ProcessorStats:
    """Counters for one processed batch."""

    processed: int = 0
    failed: int = 0
    skipped: int = 0
    total_latency_ms: int = 0
    total_tokens: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)

    @property
    def average_latency_ms(self) -> float:
        if not self.processed:
            return 0.0
        return self.total_latency_ms / self.processed

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "failed": self.failed,
            "skipped": self.skipped,
            "total_latency_ms": self.total_latency_ms,
            "total_tokens": self.total_tokens,
            "average_latency_ms": round(self.average_latency_ms, 1),
            "errors": list(self.errors),
        }


def _error_code(exc: Exception) -> ErrorCode:
    if isinstance(exc, EnrichmentServiceError):
        return exc.code
    return ErrorCode.UNEXPECTED_ERROR


def _failure_stage(code: ErrorCode) -> FailureStage:
    return FailureStage.PARSE if code in _PARSE_CODES else FailureStage.MODEL_CALL


class EnrichmentProcessor:
    """
    Enrich a batch of claimed records.

    Usage:
        processor = EnrichmentProcessor(enricher, repository, failures, config)
        stats = await processor.process(records)
    """

    def __init__(
        self,
        enricher: Enricher,
        repository: RecordRepository,
        failures: FailureLedger,
        config: EnrichmentConfig | None = None,
        retry_policy: RetryPolicy | None = None,
        rate_limiter: RequestRateLimiter | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._enricher = enricher
        self._repository = repository
        self._failures = failures
        self._config = config or EnrichmentConfig()
        self._retry_policy = retry_policy or RetryPolicy(
            max_retries=self._config.max_retries,
            base_delay=self._config.retry_base_delay,
            multiplier=self._config.retry_multiplier,
            max_delay=self._config.retry_max_delay,
            jitter_range=self._config.retry_jitter,
        )
        self._rate_limiter = rate_limiter or RequestRateLimiter(
            self._config.requests_per_minute
        )
        self._metrics = metrics or get_metrics()

    @property
    def kind(self) -> EnrichmentKind:
        return self._enricher.kind

    async def process(self, records: list[NormalizedRecord]) -> ProcessorStats:
        """
        Enrich every record, at most ``concurrency`` at a time.

        Returns:
            ProcessorStats for the batch.
        """
        stats = ProcessorStats()
        if not records:
            return stats

        semaphore = asyncio.Semaphore(self._config.concurrency)

        async def _bounded(record: NormalizedRecord) -> None:
            async with semaphore:
                await self._process_one(record, stats)

        batch_start = time.monotonic()
        await asyncio.gather(*(_bounded(r) for r in records))

        logger.info(
            "Enrichment batch complete",
            kind=self.kind.value,
            model=self._enricher.model_version,
            batch_size=len(records),
            processed=stats.processed,
            failed=stats.failed,
            skipped=stats.skipped,
            total_tokens=stats.total_tokens,
            elapsed_ms=int((time.monotonic() - batch_start) * 1000),
        )
        return stats

    async def _attempt(self, record: NormalizedRecord) -> EnrichmentOutcome:
        """One rate-limited, time-bounded model call."""
        await self._rate_limiter.acquire()
        timeout = self._config.request_timeout_seconds
        try:
            return await asyncio.wait_for(self._enricher.enrich(record), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise EnrichmentServiceError(
                ErrorCode.TIMEOUT, f"Model call exceeded {timeout}s"
            ) from e

    async def _process_one(self, record: NormalizedRecord, stats: ProcessorStats) -> None:
        kind = self.kind.value

        if not record.content or not record.content.strip():
            stats.skipped += 1
            stats.errors.append(
                {
                    "record_id": record.id,
                    "code": ErrorCode.EMPTY_CONTENT.value,
                    "message": "Record has empty content",
                }
            )
            self._metrics.record_enrichment(kind, "skipped")
            logger.warning("Record has empty content", record_id=record.id, kind=kind)
            await self._settle_failed(record)
            return

        start = time.monotonic()
        outcome = await self._retry_policy.run(
            lambda: self._attempt(record),
            is_retryable=is_retryable,
            description=f"{kind} record {record.id}",
        )
        latency_ms = int((time.monotonic() - start) * 1000)

        if not outcome.ok:
            error = outcome.error
            code = _error_code(error)
            if code == ErrorCode.UNEXPECTED_ERROR:
                logger.exception(
                    "Unexpected enrichment error", record_id=record.id, kind=kind, exc_info=error
                )
            await self._fail(
                record,
                stats,
                stage=_failure_stage(code),
                code=code,
                message=str(error),
                attempts=outcome.attempts,
            )
            return

        result = EnrichmentResult.from_outcome(
            record_id=record.id,
            kind=self.kind,
            model_version=self._enricher.model_version,
            outcome=outcome.value,
            latency_ms=latency_ms,
        )
        try:
            await self._repository.upsert_enrichment_result(result)
            await self._repository.update_status(
                record.id,
                RecordStatus.PROCESSING,
                DONE_STATUS[Platform(record.platform)],
            )
        except Exception as e:
            logger.error(
                "Failed to persist enrichment result",
                record_id=record.id,
                kind=kind,
                error=str(e),
            )
            await self._fail(
                record,
                stats,
                stage=FailureStage.PERSIST,
                code=ErrorCode.PERSIST_ERROR,
                message=str(e),
                attempts=outcome.attempts,
            )
            return

        stats.processed += 1
        stats.total_latency_ms += latency_ms
        stats.total_tokens += result.token_usage or 0
        self._metrics.record_enrichment(
            kind, "processed", latency=latency_ms / 1000, tokens=result.token_usage
        )
        logger.debug(
            "Record enriched",
            record_id=record.id,
            kind=kind,
            label=result.label,
            score=result.score,
            latency_ms=latency_ms,
            tokens=result.token_usage,
            attempts=outcome.attempts,
            degraded=outcome.value.degraded,
        )

    async def _fail(
        self,
        record: NormalizedRecord,
        stats: ProcessorStats,
        stage: FailureStage,
        code: ErrorCode,
        message: str,
        attempts: int,
    ) -> None:
        kind = self.kind.value
        stats.failed += 1
        stats.errors.append({"record_id": record.id, "code": code.value, "message": message})
        self._metrics.record_enrichment(kind, "failed")
        self._metrics.record_enrichment_error(kind, code.value)
        logger.warning(
            "Enrichment failed",
            record_id=record.id,
            kind=kind,
            code=code.value,
            stage=stage.value,
            attempts=attempts,
            error=message[:200],
        )

        try:
            await self._failures.record_failure(
                record.id,
                self.kind,
                stage,
                code.value,
                message,
                payload={
                    "content": record.content_preview(self._config.content_preview_chars),
                    "platform_id": record.platform_id,
                    "attempt_count": record.attempt_count,
                    "call_attempts": attempts,
                },
                model_version=self._enricher.model_version,
            )
        except Exception as e:
            logger.error(
                "Failed to record enrichment failure", record_id=record.id, error=str(e)
            )
        await self._settle_failed(record)

    async def _settle_failed(self, record: NormalizedRecord) -> None:
        """Move a claimed record to failed; stuck reset covers a failed write."""
        try:
            await self._repository.update_status(
                record.id, RecordStatus.PROCESSING, RecordStatus.FAILED
            )
        except Exception as e:
            logger.error(
                "Failed to mark record failed", record_id=record.id, error=str(e)
            )
