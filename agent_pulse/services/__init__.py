"""Services that orchestrate collection, enrichment, and maintenance."""

from agent_pulse.services.collection_service import (
    CollectionFailedError,
    CollectionOrchestrator,
    CollectionStats,
    RssSyncRequest,
    TweetCollectionRequest,
)
from agent_pulse.services.enrichment_service import (
    EnrichmentJob,
    EnrichmentJobStats,
    build_sentiment_job,
    build_summary_job,
)
from agent_pulse.services.maintenance_service import MaintenanceService

__all__ = [
    "CollectionFailedError",
    "CollectionOrchestrator",
    "CollectionStats",
    "EnrichmentJob",
    "EnrichmentJobStats",
    "MaintenanceService",
    "RssSyncRequest",
    "TweetCollectionRequest",
    "build_sentiment_job",
    "build_summary_job",
]
