"""
Health check endpoint: database connectivity and enrichment queue health.

Each queue is graded on three signals: pending backlog, claims stuck in
processing past the stuck timeout, and the share of recently collected
records that ended in failed.
"""

import time

import structlog
from fastapi import APIRouter, Depends

from agent_pulse import __version__
from agent_pulse.api.dependencies import get_claim_queues, get_database, get_enrichment_config
from agent_pulse.api.models import ComponentHealth, HealthResponse, QueueHealth
from agent_pulse.config.settings import Settings, get_settings
from agent_pulse.enrichment.config import EnrichmentConfig
from agent_pulse.queues.claim_queue import ClaimQueue, QueueStats
from agent_pulse.storage.database import Database

router = APIRouter()
logger = structlog.get_logger(__name__)

_SEVERITY = {"healthy": 0, "warning": 1, "critical": 2}


async def _check_database(db: Database) -> ComponentHealth:
    """Check database connectivity and measure latency."""
    start = time.perf_counter()
    try:
        healthy = await db.health_check()
        latency_ms = (time.perf_counter() - start) * 1000
        return ComponentHealth(
            status="healthy" if healthy else "unhealthy",
            latency_ms=round(latency_ms, 2),
        )
    except Exception as e:
        latency_ms = (time.perf_counter() - start) * 1000
        return ComponentHealth(
            status="unhealthy",
            latency_ms=round(latency_ms, 2),
            details={"error": str(e)},
        )


def _grade(
    value: float,
    warning: float,
    critical: float,
    label: str,
    issues: list[str],
    fmt: str = "{:g}",
) -> str:
    """Grade one signal; strictly above a threshold trips it."""
    shown = fmt.format(value)
    if value > critical:
        issues.append(f"Critical: {shown} {label} (threshold: {critical:g})")
        return "critical"
    if value > warning:
        issues.append(f"Warning: {shown} {label} (threshold: {warning:g})")
        return "warning"
    return "healthy"


def evaluate_queue(
    stats: QueueStats,
    settings: Settings,
    stuck_timeout_minutes: int,
) -> QueueHealth:
    """Grade one queue's counts against the configured thresholds."""
    issues: list[str] = []
    rate = stats.failure_rate
    grades = [
        _grade(
            stats.pending,
            settings.health_pending_warning,
            settings.health_pending_critical,
            "pending records",
            issues,
        ),
        _grade(
            rate,
            settings.health_failure_rate_warning,
            settings.health_failure_rate_critical,
            f"failure rate over {stats.window_hours}h",
            issues,
            fmt="{:.1f}%",
        ),
        _grade(
            stats.stuck,
            settings.health_stuck_warning,
            settings.health_stuck_critical,
            f"records stuck in processing over {stuck_timeout_minutes} minutes",
            issues,
        ),
    ]
    return QueueHealth(
        status=max(grades, key=_SEVERITY.__getitem__),
        pending=stats.pending,
        stuck=stats.stuck,
        stuck_timeout_minutes=stuck_timeout_minutes,
        failure_rate=round(rate, 2),
        failed_count=stats.recent_failed,
        total_count=stats.recent_total,
        window_hours=stats.window_hours,
        issues=issues,
    )


async def _check_queues(
    queues: list[ClaimQueue],
    settings: Settings,
    stuck_timeout_minutes: int,
) -> dict[str, QueueHealth | None]:
    """Queue health per kind; None where the counts could not be read."""
    results: dict[str, QueueHealth | None] = {}
    for queue in queues:
        kind = queue.spec.kind.value
        try:
            stats = await queue.queue_stats(
                stuck_timeout_minutes, window_hours=settings.health_failure_window_hours
            )
        except Exception as e:
            logger.warning("Queue health unavailable", kind=kind, error=str(e))
            results[kind] = None
            continue
        results[kind] = evaluate_queue(stats, settings, stuck_timeout_minutes)
    return results


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    description="Check database connectivity, enrichment backlog, stuck claims, and failure rates.",
)
async def health_check(
    db: Database = Depends(get_database),
    queues: list[ClaimQueue] = Depends(get_claim_queues),
    settings: Settings = Depends(get_settings),
    config: EnrichmentConfig = Depends(get_enrichment_config),
) -> HealthResponse:
    """
    Status logic:
    - unhealthy: database is down
    - critical: a queue breached a critical threshold
    - warning: a queue breached a warning threshold
    - degraded: a queue's counts could not be read
    - healthy: all components operational
    """
    db_health = await _check_database(db)
    checked: dict[str, QueueHealth | None] = {}
    if db_health.status == "healthy":
        checked = await _check_queues(queues, settings, config.stuck_timeout_minutes)

    queue_health = {kind: health for kind, health in checked.items() if health is not None}
    queue_depths = {
        kind: health.pending if health is not None else -1 for kind, health in checked.items()
    }
    issues = [f"{kind}: {issue}" for kind, health in queue_health.items() for issue in health.issues]

    worst = max((_SEVERITY[h.status] for h in queue_health.values()), default=0)
    if db_health.status == "unhealthy":
        status = "unhealthy"
    elif worst == _SEVERITY["critical"]:
        status = "critical"
    elif worst == _SEVERITY["warning"]:
        status = "warning"
    elif len(queue_health) < len(checked):
        status = "degraded"
    else:
        status = "healthy"

    if status != "healthy":
        logger.warning("Health check not healthy", status=status, issues=issues)

    return HealthResponse(
        status=status,
        components={"database": db_health},
        queue_depths=queue_depths,
        queues=queue_health,
        issues=issues,
        version=__version__,
    )
