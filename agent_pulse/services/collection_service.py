"""
Collection orchestrator - one finite ingestion run per invocation.

Fetches a batch from an external source, normalizes it, drops keys the
store already holds, persists the rest with a pending status, and records
the whole invocation in the run ledger. Per-item problems are collected in
the run's error list; only source- or ledger-level failures abort the run.

Runs are safe to repeat: the deduplication gate plus the natural-key
unique indexes make a re-run over the same window insert nothing new.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Literal

import structlog
from pydantic import BaseModel, Field

from agent_pulse.categories.resolver import CategoryResolver
from agent_pulse.config.settings import Settings, get_settings
from agent_pulse.ingestion.deduplication import DeduplicationGate
from agent_pulse.ingestion.rss_normalizer import extract_entry_key, normalize_rss_entry
from agent_pulse.ingestion.schemas import (
    NaturalKey,
    NormalizationContext,
    NormalizedRecord,
    Platform,
    RawItem,
)
from agent_pulse.ingestion.tweet_normalizer import extract_platform_id, normalize_tweet
from agent_pulse.ledger.runs import RunLedger, RunRecord, TriggerSource
from agent_pulse.observability.metrics import MetricsCollector, get_metrics
from agent_pulse.sources.apify import ApifyClient, build_search_input
from agent_pulse.sources.miniflux import MinifluxClient
from agent_pulse.storage.repository import RecordRepository

logger = structlog.get_logger(__name__)

TWEETS_PIPELINE = "tweets"
RSS_PIPELINE = "rss"

RawPayload = dict[str, Any]


class CollectionFailedError(Exception):
    """A collection run aborted; the run row has been finalized as failed."""

    def __init__(self, message: str, run_id: str | None = None):
        super().__init__(message)
        self.run_id = run_id


class TweetCollectionRequest(BaseModel):
    """Parameters for one tweet collection run."""

    keywords: list[str] | None = Field(
        default=None, description="Search keywords (defaults to COLLECTOR_KEYWORDS)"
    )
    max_items: int = Field(default=100, ge=1, le=1000)
    sort: Literal["Latest", "Top"] = "Latest"
    language: str | None = None
    use_date_filtering: bool = False
    lookback_days: int = Field(default=7, ge=1, le=30)
    trigger_source: TriggerSource = TriggerSource.MANUAL
    dry_run: bool = Field(default=False, description="Fetch and deduplicate without writing records")


class RssSyncRequest(BaseModel):
    """Parameters for one RSS sync run."""

    limit: int = Field(default=100, ge=1, le=500)
    published_after: datetime | None = None
    lookback_days: int | None = Field(default=None, ge=1, le=30)
    status: Literal["unread", "read"] | None = None
    trigger_source: TriggerSource = TriggerSource.MANUAL
    dry_run: bool = False


@dataclass
class CollectionStats:
    """Outcome of one collection run."""

    run_id: str
    pipeline: str
    status: str = "running"
    fetched: int = 0
    new_count: int = 0
    duplicate_count: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)
    dry_run: bool = False

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "pipeline": self.pipeline,
            "status": self.status,
            "fetched": self.fetched,
            "new_count": self.new_count,
            "duplicate_count": self.duplicate_count,
            "error_count": self.error_count,
            "errors": list(self.errors),
            "dry_run": self.dry_run,
        }


def item_error(error_type: str, message: str, platform_id: str | None) -> dict[str, Any]:
    """Shape of one entry in a run's error list."""
    return {"type": error_type, "message": message, "platform_id": platform_id}


def _tweet_key(item: RawPayload) -> NaturalKey | None:
    platform_id = extract_platform_id(item)
    if platform_id is None:
        return None
    return NaturalKey(Platform.TWITTER.value, platform_id)


def _rss_key(item: RawPayload) -> NaturalKey | None:
    feed_id, entry_id = extract_entry_key(item)
    if feed_id is None or entry_id is None:
        return None
    return NaturalKey(Platform.RSS.value, entry_id, feed_id)


class CollectionOrchestrator:
    """
    Runs tweet collection and RSS sync.

    Source clients are passed in already opened; the orchestrator does not
    own their lifecycle.

    Usage:
        async with ApifyClient() as apify:
            orchestrator = CollectionOrchestrator(repository, ledger, crawler=apify)
            stats = await orchestrator.collect_tweets(TweetCollectionRequest())
    """

    def __init__(
        self,
        repository: RecordRepository,
        run_ledger: RunLedger,
        crawler: ApifyClient | None = None,
        aggregator: MinifluxClient | None = None,
        resolver: CategoryResolver | None = None,
        settings: Settings | None = None,
        metrics: MetricsCollector | None = None,
    ):
        self._repository = repository
        self._ledger = run_ledger
        self._crawler = crawler
        self._aggregator = aggregator
        self._resolver = resolver or CategoryResolver()
        self._settings = settings or get_settings()
        self._metrics = metrics or get_metrics()
        self._gate = DeduplicationGate(repository)

    async def collect_tweets(self, request: TweetCollectionRequest) -> CollectionStats:
        """
        Run the tweet crawler once and ingest its dataset.

        Raises:
            CollectionFailedError: The crawler or the run ledger failed.
        """
        if self._crawler is None:
            raise ValueError("collect_tweets requires a crawler client")

        now = datetime.now(timezone.utc)
        keywords = [k.strip().lower() for k in (request.keywords or self._settings.keyword_list)]
        keywords = [k for k in keywords if k]
        window_start = now - timedelta(days=request.lookback_days) if request.use_date_filtering else None

        run = await self._ledger.start_run(
            TWEETS_PIPELINE,
            request.trigger_source,
            keyword_batch=keywords,
            window_start=window_start,
            window_end=now if window_start else None,
            metadata={
                "max_items": request.max_items,
                "sort": request.sort,
                "language": request.language,
                "dry_run": request.dry_run,
            },
        )

        with structlog.contextvars.bound_contextvars(run_id=run.id, pipeline=TWEETS_PIPELINE):
            stats = CollectionStats(run_id=run.id, pipeline=TWEETS_PIPELINE, dry_run=request.dry_run)
            try:
                fetch_start = time.monotonic()
                actor_input = build_search_input(
                    keywords,
                    max_items=request.max_items,
                    sort=request.sort,
                    language=request.language,
                    since=window_start.date() if window_start else None,
                    until=now.date() if window_start else None,
                )
                crawler_run = await self._crawler.start_run(actor_input)
                crawler_run = await self._crawler.wait_for_run(crawler_run.run_id)
                items: list[RawPayload] = []
                if crawler_run.dataset_id:
                    items = await self._crawler.fetch_results(
                        crawler_run.dataset_id, limit=request.max_items
                    )
                else:
                    logger.warning("Crawler run returned no dataset", crawler_run_id=crawler_run.run_id)
                fetch_latency = time.monotonic() - fetch_start

                context = NormalizationContext(
                    run_id=run.id,
                    collected_at=datetime.now(timezone.utc),
                    keywords=frozenset(keywords),
                    timestamp_policy=self._settings.timestamp_fallback_policy,
                    url_host=self._settings.tweet_url_host,
                )
                await self._ingest(
                    stats,
                    Platform.TWITTER,
                    items,
                    key_of=_tweet_key,
                    normalize=lambda item: normalize_tweet(item, context),
                    collected_at=context.collected_at,
                    dry_run=request.dry_run,
                )
                self._metrics.record_ingested(
                    Platform.TWITTER, stats.new_count, stats.duplicate_count, latency=fetch_latency
                )
                return await self._finalize(
                    run, stats, metadata={"crawler_run_id": crawler_run.run_id, "fetched": stats.fetched}
                )
            except Exception as e:
                await self._abort(run, stats, e)
                raise CollectionFailedError(f"Tweet collection failed: {e}", run_id=run.id) from e

    async def sync_rss(self, request: RssSyncRequest) -> CollectionStats:
        """
        Pull recent aggregator entries and ingest them.

        Raises:
            CollectionFailedError: The aggregator or the run ledger failed.
        """
        if self._aggregator is None:
            raise ValueError("sync_rss requires an aggregator client")

        now = datetime.now(timezone.utc)
        lookback = request.lookback_days or self._settings.rss_lookback_days
        published_after = request.published_after or now - timedelta(days=lookback)

        run = await self._ledger.start_run(
            RSS_PIPELINE,
            request.trigger_source,
            window_start=published_after,
            window_end=now,
            metadata={"limit": request.limit, "status": request.status, "dry_run": request.dry_run},
        )

        with structlog.contextvars.bound_contextvars(run_id=run.id, pipeline=RSS_PIPELINE):
            stats = CollectionStats(run_id=run.id, pipeline=RSS_PIPELINE, dry_run=request.dry_run)
            try:
                fetch_start = time.monotonic()
                page = await self._aggregator.list_entries(
                    limit=request.limit,
                    status=request.status,
                    published_after=published_after,
                )
                fetch_latency = time.monotonic() - fetch_start

                context = NormalizationContext(
                    run_id=run.id,
                    collected_at=datetime.now(timezone.utc),
                    timestamp_policy=self._settings.timestamp_fallback_policy,
                )
                await self._ingest(
                    stats,
                    Platform.RSS,
                    page.entries,
                    key_of=_rss_key,
                    normalize=lambda item: normalize_rss_entry(item, context, self._resolver),
                    collected_at=context.collected_at,
                    dry_run=request.dry_run,
                )
                self._metrics.record_ingested(
                    Platform.RSS, stats.new_count, stats.duplicate_count, latency=fetch_latency
                )
                feed_ids = sorted({key.feed_id for key in map(_rss_key, page.entries) if key})
                return await self._finalize(
                    run,
                    stats,
                    metadata={"total_available": page.total, "fetched": stats.fetched, "feed_ids": feed_ids},
                )
            except Exception as e:
                await self._abort(run, stats, e)
                raise CollectionFailedError(f"RSS sync failed: {e}", run_id=run.id) from e

    async def _ingest(
        self,
        stats: CollectionStats,
        platform: Platform,
        items: list[RawPayload],
        key_of: Callable[[RawPayload], NaturalKey | None],
        normalize: Callable[[RawPayload], NormalizedRecord],
        collected_at: datetime,
        dry_run: bool,
    ) -> None:
        """Precheck, deduplicate, normalize, and persist one fetched batch."""
        stats.fetched = len(items)

        keyed: list[tuple[NaturalKey, RawPayload]] = []
        for item in items:
            key = key_of(item)
            if key is None:
                stats.errors.append(
                    item_error("normalization_precheck_failed", "Item has no resolvable id", None)
                )
                self._metrics.record_normalization_error(platform, "precheck")
                continue
            keyed.append((key, item))

        existing = await self._gate.find_existing(key for key, _ in keyed)
        # A key is accepted only once its item has normalized
        accepted: set[NaturalKey] = set()

        for key, item in keyed:
            if key in existing or key in accepted:
                stats.duplicate_count += 1
                continue
            try:
                record = normalize(item)
            except Exception as e:
                stats.errors.append(item_error("normalization_failed", str(e), key.platform_id))
                self._metrics.record_normalization_error(platform, type(e).__name__)
                logger.warning("Normalization failed", platform_id=key.platform_id, error=str(e))
                continue
            accepted.add(key)

            if dry_run:
                stats.new_count += 1
                continue

            try:
                raw_id = await self._repository.insert_raw_item(
                    RawItem(
                        platform=platform,
                        platform_id=key.platform_id,
                        run_id=stats.run_id,
                        payload=dict(item),
                        collected_at=collected_at,
                    )
                )
                record_id = await self._repository.insert_if_new(
                    record.model_copy(update={"raw_item_id": raw_id})
                )
            except Exception as e:
                stats.errors.append(item_error("persistence_failed", str(e), key.platform_id))
                logger.error("Failed to persist record", platform_id=key.platform_id, error=str(e))
                continue

            if record_id is None:
                # Lost a race with an overlapping run; the unique index kept the first
                stats.duplicate_count += 1
            else:
                stats.new_count += 1

        logger.info(
            "Batch ingested",
            platform=platform.value,
            fetched=stats.fetched,
            new=stats.new_count,
            duplicates=stats.duplicate_count,
            errors=stats.error_count,
            dry_run=dry_run,
        )

    async def _finalize(
        self,
        run: RunRecord,
        stats: CollectionStats,
        metadata: dict[str, Any],
    ) -> CollectionStats:
        finalized = await self._ledger.finalize_run(
            run.id,
            new_count=stats.new_count,
            duplicate_count=stats.duplicate_count,
            errors=stats.errors,
            metadata=metadata,
        )
        stats.status = finalized.status
        self._metrics.record_run(stats.pipeline, stats.status)
        logger.info(
            "Run finalized",
            status=stats.status,
            new=stats.new_count,
            duplicates=stats.duplicate_count,
            errors=stats.error_count,
        )
        return stats

    async def _abort(self, run: RunRecord, stats: CollectionStats, error: Exception) -> None:
        """Best-effort finalize as failed; the original error is re-raised by the caller."""
        stats.status = "failed"
        self._metrics.record_run(stats.pipeline, stats.status)
        logger.error("Collection run failed", error=str(error), error_type=type(error).__name__)
        try:
            await self._ledger.fail_run(
                run.id,
                error,
                new_count=stats.new_count,
                duplicate_count=stats.duplicate_count,
                errors=stats.errors,
            )
        except Exception as ledger_error:
            logger.error("Failed to finalize run as failed", error=str(ledger_error))
