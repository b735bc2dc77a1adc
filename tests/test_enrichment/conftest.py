"""Fixtures for enrichment tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from agent_pulse.enrichment.config import EnrichmentConfig
from agent_pulse.enrichment.schemas import EnrichmentOutcome
from agent_pulse.ingestion.schemas import EnrichmentKind
from agent_pulse.queues.backoff import RetryPolicy


class FakeEnricher:
    """Enricher whose replies are scripted per call."""

    kind = EnrichmentKind.SENTIMENT

    def __init__(self, side_effect=None, model_version: str = "gemini-test"):
        self.enrich = AsyncMock(
            side_effect=side_effect,
            return_value=EnrichmentOutcome(label="positive", score=0.8, token_usage=40),
        )
        self._model_version = model_version
        self.close = AsyncMock()

    @property
    def model_version(self) -> str:
        return self._model_version


@pytest.fixture
def enrichment_config() -> EnrichmentConfig:
    return EnrichmentConfig(
        concurrency=2,
        requests_per_minute=0,
        max_retries=2,
        retry_base_delay=0.0,
        retry_jitter=0.0,
    )


@pytest.fixture
def fast_retry() -> RetryPolicy:
    return RetryPolicy(max_retries=2, base_delay=0.0, sleep=AsyncMock())


@pytest.fixture
def mock_repository() -> AsyncMock:
    repo = AsyncMock()
    repo.upsert_enrichment_result = AsyncMock()
    repo.update_status = AsyncMock(return_value=True)
    return repo


@pytest.fixture
def mock_failures() -> AsyncMock:
    failures = AsyncMock()
    failures.record_failure = AsyncMock(return_value=1)
    return failures


@pytest.fixture
def mock_metrics() -> MagicMock:
    return MagicMock()


@pytest.fixture
def make_enricher():
    """Factory for FakeEnricher instances."""
    return FakeEnricher
