"""
Dependency injection for FastAPI endpoints.

Trigger dependencies return async runner callables instead of services so
the source clients are opened (and their configuration errors raised)
inside the endpoint, where they map onto the trigger error contract.
"""

from collections.abc import Awaitable, Callable

from fastapi import Depends, Request

from agent_pulse.api.cache import TTLCache
from agent_pulse.enrichment.config import EnrichmentConfig
from agent_pulse.ledger.failures import FailureLedger
from agent_pulse.ledger.runs import RunLedger
from agent_pulse.queues.claim_queue import SENTIMENT_QUEUE, SUMMARY_QUEUE, ClaimQueue
from agent_pulse.services.collection_service import (
    CollectionOrchestrator,
    CollectionStats,
    RssSyncRequest,
    TweetCollectionRequest,
)
from agent_pulse.services.enrichment_service import (
    EnrichmentJobStats,
    build_sentiment_job,
    build_summary_job,
)
from agent_pulse.services.maintenance_service import MaintenanceService
from agent_pulse.sources.apify import ApifyClient
from agent_pulse.sources.miniflux import MinifluxClient
from agent_pulse.sources.research import Paper, ResearchClient
from agent_pulse.storage.database import Database
from agent_pulse.storage.repository import RecordRepository

TweetRunner = Callable[[TweetCollectionRequest], Awaitable[CollectionStats]]
RssRunner = Callable[[RssSyncRequest], Awaitable[CollectionStats]]
EnrichmentRunner = Callable[[int | None], Awaitable[EnrichmentJobStats]]
ResearchFetcher = Callable[[int], Awaitable[list[Paper]]]

# Global instance (initialized on first request)
_database: Database | None = None


async def get_database() -> Database:
    """Shared connection pool, connected on first use."""
    global _database

    if _database is None:
        _database = Database()
        await _database.connect()

    return _database


async def get_repository(db: Database = Depends(get_database)) -> RecordRepository:
    return RecordRepository(db)


async def get_run_ledger(db: Database = Depends(get_database)) -> RunLedger:
    return RunLedger(db)


async def get_failure_ledger(db: Database = Depends(get_database)) -> FailureLedger:
    return FailureLedger(db)


async def get_claim_queues(db: Database = Depends(get_database)) -> list[ClaimQueue]:
    return [ClaimQueue(db, SENTIMENT_QUEUE), ClaimQueue(db, SUMMARY_QUEUE)]


async def get_enrichment_config() -> EnrichmentConfig:
    return EnrichmentConfig()


async def get_maintenance_service(
    repository: RecordRepository = Depends(get_repository),
    failures: FailureLedger = Depends(get_failure_ledger),
) -> MaintenanceService:
    return MaintenanceService(repository, failures)


async def get_tweet_runner(
    repository: RecordRepository = Depends(get_repository),
    ledger: RunLedger = Depends(get_run_ledger),
) -> TweetRunner:
    async def run(request: TweetCollectionRequest) -> CollectionStats:
        async with ApifyClient() as crawler:
            orchestrator = CollectionOrchestrator(repository, ledger, crawler=crawler)
            return await orchestrator.collect_tweets(request)

    return run


async def get_rss_runner(
    repository: RecordRepository = Depends(get_repository),
    ledger: RunLedger = Depends(get_run_ledger),
) -> RssRunner:
    async def run(request: RssSyncRequest) -> CollectionStats:
        async with MinifluxClient() as aggregator:
            orchestrator = CollectionOrchestrator(repository, ledger, aggregator=aggregator)
            return await orchestrator.sync_rss(request)

    return run


async def get_sentiment_runner(db: Database = Depends(get_database)) -> EnrichmentRunner:
    async def run(batch_size: int | None = None) -> EnrichmentJobStats:
        job = build_sentiment_job(db)
        try:
            return await job.run(batch_size)
        finally:
            await job.close()

    return run


async def get_summary_runner(db: Database = Depends(get_database)) -> EnrichmentRunner:
    async def run(batch_size: int | None = None) -> EnrichmentJobStats:
        job = build_summary_job(db)
        try:
            return await job.run(batch_size)
        finally:
            await job.close()

    return run


async def fetch_research_papers(rows: int) -> list[Paper]:
    async with ResearchClient() as client:
        return await client.search_coding_agents(rows=rows)


def get_research_fetcher() -> ResearchFetcher:
    return fetch_research_papers


def get_research_cache(request: Request) -> TTLCache:
    """Research feed cache created by create_app()."""
    return request.app.state.research_cache


async def cleanup_dependencies() -> None:
    """Close the shared pool on shutdown."""
    global _database

    if _database is not None:
        await _database.close()
        _database = None
