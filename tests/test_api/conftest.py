"""Shared fixtures for API tests."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from agent_pulse.api.app import create_app
from agent_pulse.api.auth import verify_scheduler
from agent_pulse.api.cache import TTLCache
from agent_pulse.api.dependencies import (
    get_maintenance_service,
    get_repository,
    get_research_cache,
    get_research_fetcher,
    get_rss_runner,
    get_sentiment_runner,
    get_summary_runner,
    get_tweet_runner,
)
from agent_pulse.queues.claim_queue import QueueStats
from agent_pulse.services.collection_service import CollectionStats
from agent_pulse.services.enrichment_service import EnrichmentJobStats
from agent_pulse.sources.research import Paper


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_paper(bibcode: str = "2026arXiv260300001A") -> Paper:
    return Paper(
        id=bibcode,
        title="Evaluating coding agents on legacy repositories",
        authors="A. Author, B. Author",
        published=datetime(2026, 3, 1, tzinfo=timezone.utc),
        arxiv_class="cs.SE",
        abstract="We study coding agents.",
        citations=2,
        pdf="https://arxiv.org/pdf/2603.00001.pdf",
    )


@pytest.fixture
def tweet_runner() -> AsyncMock:
    return AsyncMock(
        return_value=CollectionStats(
            run_id="run-1", pipeline="tweets", status="succeeded", fetched=3, new_count=2, duplicate_count=1
        )
    )


@pytest.fixture
def rss_runner() -> AsyncMock:
    return AsyncMock(
        return_value=CollectionStats(run_id="run-2", pipeline="rss", status="succeeded", fetched=1, new_count=1)
    )


@pytest.fixture
def sentiment_runner() -> AsyncMock:
    return AsyncMock(return_value=EnrichmentJobStats(kind="sentiment", claimed=2, processed=2))


@pytest.fixture
def summary_runner() -> AsyncMock:
    return AsyncMock(return_value=EnrichmentJobStats(kind="summary", claimed=1, failed=1))


@pytest.fixture
def mock_maintenance() -> AsyncMock:
    service = AsyncMock()
    service.reconcile_failures = AsyncMock(return_value={"found": 0, "deleted": 0, "dry_run": False})
    return service


@pytest.fixture
def mock_repository() -> AsyncMock:
    repo = AsyncMock()
    repo.list_rss_entries = AsyncMock(return_value=[])
    repo.count_records = AsyncMock(return_value=0)
    repo.sentiment_daily = AsyncMock(return_value=[])
    return repo


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def research_cache(clock) -> TTLCache:
    return TTLCache(ttl_seconds=3600, max_entries=4, clock=clock)


@pytest.fixture
def research_fetcher() -> AsyncMock:
    return AsyncMock(return_value=[make_paper()])


@pytest.fixture
def app(
    tweet_runner,
    rss_runner,
    sentiment_runner,
    summary_runner,
    mock_maintenance,
    mock_repository,
    research_cache,
    research_fetcher,
):
    """App with every external dependency overridden."""
    app = create_app()
    app.dependency_overrides[verify_scheduler] = lambda: "api-key"
    app.dependency_overrides[get_tweet_runner] = lambda: tweet_runner
    app.dependency_overrides[get_rss_runner] = lambda: rss_runner
    app.dependency_overrides[get_sentiment_runner] = lambda: sentiment_runner
    app.dependency_overrides[get_summary_runner] = lambda: summary_runner
    app.dependency_overrides[get_maintenance_service] = lambda: mock_maintenance
    app.dependency_overrides[get_repository] = lambda: mock_repository
    app.dependency_overrides[get_research_cache] = lambda: research_cache
    app.dependency_overrides[get_research_fetcher] = lambda: research_fetcher
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    """FastAPI TestClient with dependency overrides."""
    with TestClient(app) as c:
        yield c


@pytest.fixture
def paper_factory():
    return make_paper


@pytest.fixture
def queue_factory():
    """Claim queue stand-ins for the health endpoint."""

    def _make(
        kind: str,
        depth: int = 0,
        error: Exception | None = None,
        stuck: int = 0,
        recent_total: int = 0,
        recent_failed: int = 0,
    ) -> MagicMock:
        queue = MagicMock()
        queue.spec.kind.value = kind
        stats = QueueStats(
            pending=depth, stuck=stuck, recent_total=recent_total, recent_failed=recent_failed
        )
        queue.queue_stats = AsyncMock(return_value=stats, side_effect=error)
        return queue

    return _make
