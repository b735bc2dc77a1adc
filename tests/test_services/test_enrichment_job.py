"""Tests for enrichment job passes and the job builders."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from agent_pulse.enrichment.config import EnrichmentConfig
from agent_pulse.enrichment.processor import ProcessorStats, SentimentEnricher, SummaryEnricher
from agent_pulse.ingestion.schemas import EnrichmentKind
from agent_pulse.ledger.failures import FailureLedger, FailureStage
from agent_pulse.queues.claim_queue import SENTIMENT_QUEUE, SUMMARY_QUEUE
from agent_pulse.services.enrichment_service import (
    EnrichmentJob,
    build_sentiment_job,
    build_summary_job,
    recover_stuck,
)


def _queue(spec, records=None, reset_ids=None, expired=None, depth=0) -> MagicMock:
    queue = MagicMock()
    queue.spec = spec
    queue.expire_stuck = AsyncMock(return_value=expired or [])
    queue.reset_stuck = AsyncMock(return_value=reset_ids or [])
    queue.claim = AsyncMock(return_value=records or [])
    queue.queue_depth = AsyncMock(return_value=depth)
    return queue


@pytest.fixture
def config() -> EnrichmentConfig:
    return EnrichmentConfig(sentiment_batch_size=25, summary_batch_size=5, max_attempts=4)


@pytest.fixture
def failures() -> AsyncMock:
    return AsyncMock()


class TestEnrichmentJob:
    """Tests for EnrichmentJob.run."""

    @pytest.mark.asyncio
    async def test_full_pass(self, config, failures, mock_metrics, sample_tweet_record):
        queue = _queue(SENTIMENT_QUEUE, records=[sample_tweet_record], reset_ids=[3, 4], depth=12)
        processor = AsyncMock()
        processor.process = AsyncMock(
            return_value=ProcessorStats(processed=1, total_latency_ms=300, total_tokens=40)
        )
        job = EnrichmentJob(queue, processor, failures, config=config, metrics=mock_metrics)

        stats = await job.run()

        queue.expire_stuck.assert_awaited_once_with(30, 4)
        queue.reset_stuck.assert_awaited_once_with(30, max_attempts=4)
        queue.claim.assert_awaited_once_with(25, max_attempts=4)
        processor.process.assert_awaited_once_with([sample_tweet_record])
        assert stats.kind == "sentiment"
        assert stats.stuck_reset == 2
        assert stats.claimed == 1
        assert stats.processed == 1
        assert stats.total_tokens == 40
        assert stats.queue_depth == 12
        mock_metrics.record_stuck_resets.assert_called_once_with("sentiment", 2)
        mock_metrics.set_queue_depth.assert_called_once_with("sentiment", 12)

    @pytest.mark.asyncio
    async def test_empty_queue_skips_processor(self, config, failures, mock_metrics):
        queue = _queue(SUMMARY_QUEUE)
        processor = AsyncMock()
        job = EnrichmentJob(queue, processor, failures, config=config, metrics=mock_metrics)

        stats = await job.run()

        queue.claim.assert_awaited_once_with(5, max_attempts=4)
        processor.process.assert_not_awaited()
        mock_metrics.record_stuck_resets.assert_not_called()
        mock_metrics.record_stuck_expired.assert_not_called()
        failures.record_failure.assert_not_awaited()
        assert stats.to_dict()["claimed"] == 0

    @pytest.mark.asyncio
    async def test_exhausted_stuck_claims_are_failed_and_ledgered(self, config, failures, mock_metrics):
        """A stale claim with no attempts left goes to failed instead of back to pending."""
        queue = _queue(SENTIMENT_QUEUE, expired=[(8, 4), (9, 5)], reset_ids=[10])
        job = EnrichmentJob(queue, AsyncMock(), failures, config=config, metrics=mock_metrics)

        stats = await job.run()

        assert stats.stuck_expired == 2
        assert stats.stuck_reset == 1
        assert stats.to_dict()["stuck_expired"] == 2
        assert failures.record_failure.await_count == 2
        first = failures.record_failure.await_args_list[0]
        assert first.args[:4] == (
            8,
            EnrichmentKind.SENTIMENT,
            FailureStage.STUCK,
            "ATTEMPTS_EXHAUSTED",
        )
        assert first.kwargs["payload"] == {"attempt_count": 4, "timeout_minutes": 30}
        mock_metrics.record_stuck_expired.assert_called_once_with("sentiment", 2)
        mock_metrics.record_stuck_resets.assert_called_once_with("sentiment", 1)

    @pytest.mark.asyncio
    async def test_expiry_runs_before_reset(self, config, failures, mock_metrics):
        calls = []
        queue = _queue(SUMMARY_QUEUE)
        queue.expire_stuck.side_effect = lambda *a, **k: calls.append("expire") or []
        queue.reset_stuck.side_effect = lambda *a, **k: calls.append("reset") or []

        await recover_stuck(queue, failures, 15, 2, metrics=mock_metrics)

        assert calls == ["expire", "reset"]
        queue.reset_stuck.assert_awaited_once_with(15, max_attempts=2)

    @pytest.mark.asyncio
    async def test_explicit_batch_size(self, config, failures, mock_metrics):
        queue = _queue(SUMMARY_QUEUE)
        job = EnrichmentJob(queue, AsyncMock(), failures, config=config, metrics=mock_metrics)

        await job.run(batch_size=50)

        assert queue.claim.await_args.args[0] == 50

    @pytest.mark.asyncio
    async def test_close_closes_enricher(self, config, failures, mock_metrics):
        enricher = AsyncMock()
        job = EnrichmentJob(
            _queue(SENTIMENT_QUEUE),
            AsyncMock(),
            failures,
            enricher=enricher,
            config=config,
            metrics=mock_metrics,
        )

        await job.close()

        enricher.close.assert_awaited_once()


class TestJobBuilders:
    """Tests for build_sentiment_job and build_summary_job."""

    def test_sentiment_job_wiring(self, test_settings, mock_metrics):
        job = build_sentiment_job(AsyncMock(), settings=test_settings, metrics=mock_metrics)

        assert job.kind.value == "sentiment"
        assert isinstance(job._enricher, SentimentEnricher)
        assert isinstance(job._failures, FailureLedger)
        assert job._enricher.model_version == test_settings.gemini_model

    def test_summary_job_wiring(self, test_settings, mock_metrics):
        config = EnrichmentConfig(circuit_failure_threshold=2)
        job = build_summary_job(
            AsyncMock(), settings=test_settings, config=config, metrics=mock_metrics
        )

        assert job.kind.value == "summary"
        assert isinstance(job._enricher, SummaryEnricher)
        assert job._enricher.model_version == test_settings.ollama_model
