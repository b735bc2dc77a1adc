"""
Daily tweet sentiment metrics for the dashboard.
"""

import structlog
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from agent_pulse.api.dependencies import get_repository
from agent_pulse.api.models import ErrorResponse, SentimentDay, SentimentMetricsResponse
from agent_pulse.enrichment.prompts import SENTIMENT_LABELS
from agent_pulse.storage.repository import RecordRepository

logger = structlog.get_logger(__name__)
router = APIRouter()


def aggregate_daily(rows, days: int) -> SentimentMetricsResponse:
    """Fold (day, label, count, avg_score) rows into per-day totals."""
    by_day: dict = {}
    weighted: dict = {}
    totals = {label: 0 for label in SENTIMENT_LABELS}
    overall_sum = 0.0
    overall_n = 0

    for row in rows:
        day = row["day"]
        label = row["label"]
        count = int(row["count"])
        entry = by_day.setdefault(day, SentimentDay(date=day))
        if label in totals:
            setattr(entry, label, getattr(entry, label) + count)
            totals[label] += count
        entry.total += count
        if row["avg_score"] is not None:
            score_sum = float(row["avg_score"]) * count
            day_sum, day_n = weighted.get(day, (0.0, 0))
            weighted[day] = (day_sum + score_sum, day_n + count)
            overall_sum += score_sum
            overall_n += count

    for day, (score_sum, n) in weighted.items():
        by_day[day].average_score = round(score_sum / n, 4) if n else None

    return SentimentMetricsResponse(
        days=days,
        daily=[by_day[d] for d in sorted(by_day)],
        totals=totals,
        average_score=round(overall_sum / overall_n, 4) if overall_n else None,
    )


@router.get(
    "/metrics/sentiment",
    response_model=SentimentMetricsResponse,
    responses={500: {"model": ErrorResponse, "description": "Query failed"}},
    summary="Daily sentiment label counts",
)
async def sentiment_metrics(
    days: int = Query(default=7, ge=1, le=90),
    repository: RecordRepository = Depends(get_repository),
):
    try:
        rows = await repository.sentiment_daily(days)
    except Exception as e:
        logger.error("Sentiment metrics query failed", error=str(e))
        return JSONResponse(
            status_code=500,
            content={"detail": "Failed to load sentiment metrics", "error_type": "query_failed"},
        )
    return aggregate_daily(rows, days)
