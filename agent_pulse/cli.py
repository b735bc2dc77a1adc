"""
Command-line interface for agent-pulse.

Each command runs one finite batch job and exits, so any scheduler
(cron, systemd timers, CI) can drive the pipeline.

Usage:
    agent-pulse init-db              # Create tables and indexes
    agent-pulse collect-tweets       # One crawler run
    agent-pulse sync-rss             # One aggregator sync
    agent-pulse process-sentiments   # Enrich one batch of tweets
    agent-pulse generate-summaries   # Summarize one batch of RSS entries
    agent-pulse serve                # Trigger and dashboard API
    agent-pulse health               # Check service health
"""

import asyncio
import json
import sys
from typing import Any, NoReturn

import click

from agent_pulse.config.settings import get_settings
from agent_pulse.observability.logging import setup_logging
from agent_pulse.observability.metrics import get_metrics


def _echo_json(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


def _fail(message: str) -> NoReturn:
    click.echo(click.style(message, fg="red"), err=True)
    sys.exit(1)


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """agent-pulse - coding-agent chatter ingestion and enrichment."""
    if debug:
        import os
        os.environ["LOG_LEVEL"] = "DEBUG"
        get_settings.cache_clear()

    setup_logging()


@main.command("init-db")
def init_db() -> None:
    """Initialize the database schema."""
    from agent_pulse.ledger.failures import FailureLedger
    from agent_pulse.ledger.runs import RunLedger
    from agent_pulse.storage.database import Database
    from agent_pulse.storage.repository import RecordRepository

    async def run():
        async with Database() as db:
            await RecordRepository(db).create_tables()
            await RunLedger(db).create_table()
            await FailureLedger(db).create_table()
        click.echo("Database initialized successfully")

    asyncio.run(run())


@main.command("collect-tweets")
@click.option("--keyword", "keywords", multiple=True, help="Search keyword (repeatable)")
@click.option("--max-items", default=None, type=int, help="Crawler item cap")
@click.option("--sort", type=click.Choice(["Latest", "Top"]), default="Latest")
@click.option("--language", default=None, help="Tweet language filter")
@click.option("--lookback-days", default=None, type=int, help="Restrict to the last N days")
@click.option("--dry-run", is_flag=True, help="Fetch and deduplicate without writing records")
@click.option("--metrics/--no-metrics", default=False, help="Enable metrics server")
def collect_tweets(
    keywords: tuple[str, ...],
    max_items: int | None,
    sort: str,
    language: str | None,
    lookback_days: int | None,
    dry_run: bool,
    metrics: bool,
) -> None:
    """Run one tweet collection."""
    from agent_pulse.ledger.runs import RunLedger, TriggerSource
    from agent_pulse.services.collection_service import (
        CollectionFailedError,
        CollectionOrchestrator,
        TweetCollectionRequest,
    )
    from agent_pulse.sources.apify import ApifyClient
    from agent_pulse.storage.database import Database
    from agent_pulse.storage.repository import RecordRepository

    settings = get_settings()
    request = TweetCollectionRequest(
        keywords=list(keywords) or None,
        max_items=max_items or settings.collector_max_items,
        sort=sort,
        language=language,
        use_date_filtering=lookback_days is not None,
        lookback_days=lookback_days or settings.collector_lookback_days,
        trigger_source=TriggerSource.CLI,
        dry_run=dry_run,
    )

    async def run():
        if metrics:
            get_metrics().start_server()
        async with Database() as db, ApifyClient() as crawler:
            orchestrator = CollectionOrchestrator(
                RecordRepository(db), RunLedger(db), crawler=crawler
            )
            try:
                stats = await orchestrator.collect_tweets(request)
            except CollectionFailedError as e:
                _fail(f"Tweet collection failed (run {e.run_id}): {e}")
        _echo_json(stats.to_dict())

    asyncio.run(run())


@main.command("sync-rss")
@click.option("--limit", default=100, type=int, help="Entries to request")
@click.option("--lookback-days", default=None, type=int, help="Only entries published in the last N days")
@click.option("--status", type=click.Choice(["unread", "read"]), default=None)
@click.option("--dry-run", is_flag=True, help="Fetch and deduplicate without writing records")
@click.option("--metrics/--no-metrics", default=False, help="Enable metrics server")
def sync_rss(
    limit: int,
    lookback_days: int | None,
    status: str | None,
    dry_run: bool,
    metrics: bool,
) -> None:
    """Run one RSS sync."""
    from agent_pulse.ledger.runs import RunLedger, TriggerSource
    from agent_pulse.services.collection_service import (
        CollectionFailedError,
        CollectionOrchestrator,
        RssSyncRequest,
    )
    from agent_pulse.sources.miniflux import MinifluxClient
    from agent_pulse.storage.database import Database
    from agent_pulse.storage.repository import RecordRepository

    request = RssSyncRequest(
        limit=limit,
        lookback_days=lookback_days,
        status=status,
        trigger_source=TriggerSource.CLI,
        dry_run=dry_run,
    )

    async def run():
        if metrics:
            get_metrics().start_server()
        async with Database() as db, MinifluxClient() as aggregator:
            orchestrator = CollectionOrchestrator(
                RecordRepository(db), RunLedger(db), aggregator=aggregator
            )
            try:
                stats = await orchestrator.sync_rss(request)
            except CollectionFailedError as e:
                _fail(f"RSS sync failed (run {e.run_id}): {e}")
        _echo_json(stats.to_dict())

    asyncio.run(run())


def _run_enrichment(builder_name: str, batch_size: int | None, metrics: bool) -> None:
    from agent_pulse.services import enrichment_service
    from agent_pulse.storage.database import Database

    builder = getattr(enrichment_service, builder_name)

    async def run():
        if metrics:
            get_metrics().start_server()
        async with Database() as db:
            job = builder(db)
            try:
                stats = await job.run(batch_size)
            finally:
                await job.close()
        _echo_json(stats.to_dict())

    asyncio.run(run())


@main.command("process-sentiments")
@click.option("--batch-size", default=None, type=int, help="Records to claim")
@click.option("--metrics/--no-metrics", default=False, help="Enable metrics server")
def process_sentiments(batch_size: int | None, metrics: bool) -> None:
    """Enrich one batch of pending tweets with sentiment."""
    _run_enrichment("build_sentiment_job", batch_size, metrics)


@main.command("generate-summaries")
@click.option("--batch-size", default=None, type=int, help="Records to claim")
@click.option("--metrics/--no-metrics", default=False, help="Enable metrics server")
def generate_summaries(batch_size: int | None, metrics: bool) -> None:
    """Summarize one batch of pending RSS entries."""
    _run_enrichment("build_summary_job", batch_size, metrics)


@main.command("reset-stuck")
@click.option(
    "--kind",
    type=click.Choice(["sentiment", "summary", "all"]),
    default="all",
    help="Which queue to reset",
)
@click.option("--timeout-minutes", default=None, type=int, help="Processing age threshold")
def reset_stuck(kind: str, timeout_minutes: int | None) -> None:
    """Return stuck records to pending, or fail them once out of claims."""
    from agent_pulse.enrichment.config import EnrichmentConfig
    from agent_pulse.ledger.failures import FailureLedger
    from agent_pulse.queues.claim_queue import SENTIMENT_QUEUE, SUMMARY_QUEUE, ClaimQueue
    from agent_pulse.services.enrichment_service import recover_stuck
    from agent_pulse.storage.database import Database

    specs = {"sentiment": [SENTIMENT_QUEUE], "summary": [SUMMARY_QUEUE]}
    selected = specs.get(kind, [SENTIMENT_QUEUE, SUMMARY_QUEUE])
    config = EnrichmentConfig()
    timeout = timeout_minutes or config.stuck_timeout_minutes

    async def run():
        reset: dict[str, int] = {}
        expired: dict[str, int] = {}
        async with Database() as db:
            failures = FailureLedger(db)
            for spec in selected:
                recovery = await recover_stuck(
                    ClaimQueue(db, spec), failures, timeout, config.max_attempts
                )
                reset[spec.kind.value] = len(recovery.reset_ids)
                expired[spec.kind.value] = len(recovery.expired_ids)
        _echo_json({"reset": reset, "expired": expired, "timeout_minutes": timeout})

    asyncio.run(run())


@main.command("replay-failures")
@click.option("--kind", type=click.Choice(["sentiment", "summary"]), required=True)
@click.option("--min-retry-count", default=1, type=int, help="Only failures retried at least N times")
@click.option("--limit", default=100, type=int, help="Maximum records to replay")
@click.option("--record-id", "record_ids", multiple=True, type=int, help="Replay specific records")
def replay_failures(
    kind: str,
    min_retry_count: int,
    limit: int,
    record_ids: tuple[int, ...],
) -> None:
    """Move failed records back to pending with a fresh attempt budget."""
    from agent_pulse.ledger.failures import FailureLedger
    from agent_pulse.services.maintenance_service import MaintenanceService
    from agent_pulse.storage.database import Database
    from agent_pulse.storage.repository import RecordRepository

    async def run():
        async with Database() as db:
            service = MaintenanceService(RecordRepository(db), FailureLedger(db))
            result = await service.replay_failures(
                kind,
                min_retry_count=min_retry_count,
                limit=limit,
                record_ids=list(record_ids) or None,
            )
        _echo_json(result)

    asyncio.run(run())


@main.command("reconcile-failures")
@click.option("--dry-run", is_flag=True, help="Report without deleting")
@click.option("--older-than-days", default=None, type=int, help="Failure age threshold")
def reconcile_failures(dry_run: bool, older_than_days: int | None) -> None:
    """Delete failure rows superseded by a later success."""
    from agent_pulse.ledger.failures import FailureLedger
    from agent_pulse.services.maintenance_service import MaintenanceService
    from agent_pulse.storage.database import Database
    from agent_pulse.storage.repository import RecordRepository

    async def run():
        async with Database() as db:
            service = MaintenanceService(RecordRepository(db), FailureLedger(db))
            result = await service.reconcile_failures(
                older_than_days=older_than_days, dry_run=dry_run
            )
        _echo_json(result)

    asyncio.run(run())


@main.command("purge-raw")
@click.option("--older-than-days", default=None, type=int, help="Retention window")
def purge_raw(older_than_days: int | None) -> None:
    """Delete raw crawler payloads past retention."""
    from agent_pulse.ledger.failures import FailureLedger
    from agent_pulse.services.maintenance_service import MaintenanceService
    from agent_pulse.storage.database import Database
    from agent_pulse.storage.repository import RecordRepository

    days = older_than_days or get_settings().raw_item_retention_days

    async def run():
        async with Database() as db:
            service = MaintenanceService(RecordRepository(db), FailureLedger(db))
            result = await service.purge_raw_items(days)
        _echo_json(result)

    asyncio.run(run())


@main.command()
@click.option("--host", default=None, help="API server host")
@click.option("--port", default=None, type=int, help="API server port")
@click.option("--reload", is_flag=True, help="Enable auto-reload (dev only)")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def serve(host: str | None, port: int | None, reload: bool, metrics_port: int | None) -> None:
    """Start the trigger and dashboard API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port
    metrics_port = metrics_port or settings.metrics_port

    # Start metrics server on separate port
    get_metrics().start_server(port=metrics_port)

    click.echo(f"Starting API server on {host}:{port}")
    click.echo(f"Metrics available on http://localhost:{metrics_port}/metrics")
    click.echo(f"API docs available on http://localhost:{port}/docs")

    uvicorn.run(
        "agent_pulse.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


@main.command()
def health() -> None:
    """Check health of all dependencies."""
    import structlog
    logger = structlog.get_logger()

    async def check():
        results: dict[str, bool] = {}

        # Check PostgreSQL
        try:
            from agent_pulse.storage.database import Database
            db = Database()
            await db.connect()
            results["postgres"] = await db.health_check()
            await db.close()
        except Exception as e:
            results["postgres"] = False
            logger.error("Postgres health check failed", error=str(e))

        # Check sources
        settings = get_settings()
        results["apify_configured"] = settings.apify_configured
        results["miniflux_configured"] = settings.miniflux_configured
        results["gemini_configured"] = settings.gemini_api_key is not None
        results["ads_configured"] = settings.ads_api_token is not None

        # Print results
        click.echo("\nHealth Check Results:")
        click.echo("-" * 40)

        for name, status in results.items():
            icon = "✓" if status else "✗"
            color = "green" if status else "red"
            click.echo(click.style(f"  {icon} {name}: {status}", fg=color))

        click.echo("-" * 40)

        if results["postgres"]:
            click.echo(click.style("All core services healthy!", fg="green"))
            sys.exit(0)
        else:
            click.echo(click.style("Some services unhealthy!", fg="red"))
            sys.exit(1)

    asyncio.run(check())


if __name__ == "__main__":
    main()
