"""
RSS entry listing for the dashboard.
"""

import math

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from agent_pulse.api.dependencies import get_repository
from agent_pulse.api.models import ErrorResponse, Pagination, RssEntriesResponse, RssEntry
from agent_pulse.ingestion.schemas import Platform
from agent_pulse.storage.repository import RecordRepository

logger = structlog.get_logger(__name__)
router = APIRouter()

MAX_PAGE_SIZE = 100


def _row_to_entry(row) -> RssEntry:
    return RssEntry(
        id=row["id"],
        entry_id=row["platform_id"],
        feed_id=row["feed_id"],
        title=row["title"],
        url=row["url"],
        author=row["author_name"],
        feed_title=row["feed_title"],
        category=row["category"],
        status=row["status"],
        published_at=row["published_at"],
        collected_at=row["collected_at"],
        content_preview=row["content_preview"],
        summary=row["summary"],
        key_points=list(row["key_points"] or []),
        topics=list(row["topics"] or []),
        sentiment=row["sentiment"],
        model_version=row["model_version"],
        summarized_at=row["processed_at"],
    )


@router.get(
    "/rss/entries",
    response_model=RssEntriesResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid pagination"},
        500: {"model": ErrorResponse, "description": "Query failed"},
    },
    summary="List RSS entries with summaries",
)
async def list_rss_entries(
    category: str | None = Query(default=None, description="Filter by category"),
    page: int = Query(default=1, description="1-based page number"),
    limit: int = Query(default=20, description="Page size (1-100)"),
    repository: RecordRepository = Depends(get_repository),
) -> RssEntriesResponse:
    if page < 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="page must be >= 1",
        )
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"limit must be between 1 and {MAX_PAGE_SIZE}",
        )

    offset = (page - 1) * limit
    rows = await repository.list_rss_entries(category=category, limit=limit, offset=offset)
    total_count = await repository.count_records(platform=Platform.RSS, category=category)
    total_pages = math.ceil(total_count / limit) if total_count else 0

    return RssEntriesResponse(
        entries=[_row_to_entry(row) for row in rows],
        pagination=Pagination(
            page=page,
            limit=limit,
            total_count=total_count,
            total_pages=total_pages,
            has_next_page=page < total_pages,
            has_previous_page=page > 1,
        ),
    )
