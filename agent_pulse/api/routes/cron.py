"""
Scheduler trigger endpoints.

Each endpoint runs one batch job to completion. GET is what the platform
scheduler calls; POST is the manual trigger and accepts the same contract
plus an optional JSON body.
"""

from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse

from agent_pulse.api.auth import verify_scheduler
from agent_pulse.api.dependencies import (
    EnrichmentRunner,
    RssRunner,
    TweetRunner,
    get_maintenance_service,
    get_rss_runner,
    get_sentiment_runner,
    get_summary_runner,
    get_tweet_runner,
)
from agent_pulse.api.models import CronErrorResponse, CronResponse
from agent_pulse.ledger.runs import TriggerSource
from agent_pulse.services.collection_service import RssSyncRequest, TweetCollectionRequest
from agent_pulse.services.maintenance_service import MaintenanceService

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/cron")

_RESPONSES = {
    401: {"description": "Missing or invalid credentials"},
    500: {"model": CronErrorResponse, "description": "Job failed"},
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _success(stats: dict[str, Any]) -> CronResponse:
    return CronResponse(success=True, stats=stats, timestamp=_now())


def _failure(job: str, error: Exception) -> JSONResponse:
    logger.error("Trigger job failed", job=job, error=str(error), error_type=type(error).__name__)
    body = CronErrorResponse(success=False, error=str(error), timestamp=_now())
    return JSONResponse(status_code=500, content=body.model_dump(mode="json"))


def _trigger_source(auth: str) -> TriggerSource:
    return TriggerSource.CRON if auth == "cron" else TriggerSource.MANUAL


@router.api_route(
    "/collect-tweets",
    methods=["GET", "POST"],
    response_model=CronResponse,
    responses=_RESPONSES,
    summary="Run one tweet collection",
)
async def collect_tweets(
    body: TweetCollectionRequest | None = Body(default=None),
    auth: str = Depends(verify_scheduler),
    run: TweetRunner = Depends(get_tweet_runner),
):
    request = (body or TweetCollectionRequest()).model_copy(
        update={"trigger_source": _trigger_source(auth)}
    )
    try:
        stats = await run(request)
    except Exception as e:
        return _failure("collect-tweets", e)
    return _success(stats.to_dict())


@router.api_route(
    "/sync-rss",
    methods=["GET", "POST"],
    response_model=CronResponse,
    responses=_RESPONSES,
    summary="Run one RSS sync",
)
async def sync_rss(
    body: RssSyncRequest | None = Body(default=None),
    auth: str = Depends(verify_scheduler),
    run: RssRunner = Depends(get_rss_runner),
):
    request = (body or RssSyncRequest()).model_copy(
        update={"trigger_source": _trigger_source(auth)}
    )
    try:
        stats = await run(request)
    except Exception as e:
        return _failure("sync-rss", e)
    return _success(stats.to_dict())


@router.api_route(
    "/process-sentiments",
    methods=["GET", "POST"],
    response_model=CronResponse,
    responses=_RESPONSES,
    summary="Enrich one batch of pending tweets",
)
async def process_sentiments(
    batch_size: int | None = Query(default=None, ge=1, le=200),
    auth: str = Depends(verify_scheduler),
    run: EnrichmentRunner = Depends(get_sentiment_runner),
):
    try:
        stats = await run(batch_size)
    except Exception as e:
        return _failure("process-sentiments", e)
    return _success(stats.to_dict())


@router.api_route(
    "/generate-summaries",
    methods=["GET", "POST"],
    response_model=CronResponse,
    responses=_RESPONSES,
    summary="Summarize one batch of pending RSS entries",
)
async def generate_summaries(
    batch_size: int | None = Query(default=None, ge=1, le=200),
    auth: str = Depends(verify_scheduler),
    run: EnrichmentRunner = Depends(get_summary_runner),
):
    try:
        stats = await run(batch_size)
    except Exception as e:
        return _failure("generate-summaries", e)
    return _success(stats.to_dict())


@router.api_route(
    "/reconcile-failures",
    methods=["GET", "POST"],
    response_model=CronResponse,
    responses=_RESPONSES,
    summary="Clear failure rows superseded by a later success",
)
async def reconcile_failures(
    dry_run: bool = Query(default=False),
    older_than_days: int | None = Query(default=None, ge=0, le=365),
    auth: str = Depends(verify_scheduler),
    service: MaintenanceService = Depends(get_maintenance_service),
):
    try:
        stats = await service.reconcile_failures(older_than_days=older_than_days, dry_run=dry_run)
    except Exception as e:
        return _failure("reconcile-failures", e)
    return _success(stats)
