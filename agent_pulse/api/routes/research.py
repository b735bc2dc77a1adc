"""
Research paper feed, cached in-process.

A failing upstream is answered from the last cached copy when one exists,
however old; only a cold cache surfaces the error.
"""

import structlog
from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import JSONResponse

from agent_pulse.api.cache import TTLCache
from agent_pulse.api.dependencies import ResearchFetcher, get_research_cache, get_research_fetcher
from agent_pulse.api.models import ResearchResponse
from agent_pulse.ingestion.http_client import HTTPClientError
from agent_pulse.sources.research import ResearchAPIError

logger = structlog.get_logger(__name__)
router = APIRouter()

STALE_WARNING = "Using cached data due to API error"


def _cache_key(rows: int) -> str:
    return f"research:coding-agents:{rows}"


@router.get(
    "/research",
    response_model=ResearchResponse,
    responses={502: {"description": "Research API unavailable and nothing cached"}},
    summary="Recent coding-agent research papers",
)
async def research_feed(
    response: Response,
    rows: int = Query(default=25, ge=1, le=100),
    cache: TTLCache = Depends(get_research_cache),
    fetch: ResearchFetcher = Depends(get_research_fetcher),
):
    key = _cache_key(rows)
    cached = cache.get(key)
    if cached is not None:
        response.headers["X-Cache-Status"] = "HIT"
        return ResearchResponse(papers=cached, count=len(cached), cached=True)

    try:
        papers = await fetch(rows)
    except (HTTPClientError, ResearchAPIError, ValueError) as e:
        logger.error("Research API request failed", error=str(e), error_type=type(e).__name__)
        stale = cache.get_stale(key)
        if stale is not None:
            response.headers["X-Cache-Status"] = "STALE"
            return ResearchResponse(papers=stale, count=len(stale), cached=True, warning=STALE_WARNING)
        return JSONResponse(
            status_code=502,
            content={
                "error": "Failed to fetch research papers",
                "details": str(e),
                "code": "ADS_API_ERROR",
            },
        )

    cache.set(key, papers)
    response.headers["X-Cache-Status"] = "MISS"
    return ResearchResponse(papers=papers, count=len(papers))
