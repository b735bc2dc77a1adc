"""
Request and response models for the trigger and dashboard API.
"""

import datetime as dt
from typing import Any

from pydantic import BaseModel, Field

from agent_pulse.sources.research import Paper


class ErrorResponse(BaseModel):
    """Response model for errors."""

    detail: str = Field(
        ...,
        description="Error message",
    )
    error_type: str = Field(
        default="error",
        description="Error type",
    )


class CronResponse(BaseModel):
    """Successful trigger invocation."""

    success: bool = True
    stats: dict[str, Any] = Field(default_factory=dict)
    timestamp: dt.datetime


class CronErrorResponse(BaseModel):
    """Failed trigger invocation."""

    success: bool = False
    error: str
    timestamp: dt.datetime


class ComponentHealth(BaseModel):
    """Health of a single infrastructure dependency."""

    status: str = Field(..., description="healthy or unhealthy")
    latency_ms: float | None = None
    details: dict[str, Any] = Field(default_factory=dict)


class QueueHealth(BaseModel):
    """Backlog, stuck claims, and recent failure rate of one enrichment queue."""

    status: str = Field(..., description="healthy, warning, or critical")
    pending: int
    stuck: int
    stuck_timeout_minutes: int
    failure_rate: float = Field(..., description="Percent of records collected in the window that failed")
    failed_count: int
    total_count: int
    window_hours: int
    issues: list[str] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str = Field(
        ...,
        description="Overall service status: healthy, warning, critical, degraded, or unhealthy",
    )
    components: dict[str, ComponentHealth] = Field(default_factory=dict)
    queue_depths: dict[str, int] = Field(
        default_factory=dict,
        description="Pending records per enrichment kind (-1 when unavailable)",
    )
    queues: dict[str, QueueHealth] = Field(default_factory=dict)
    issues: list[str] = Field(default_factory=list)
    version: str


class RssEntry(BaseModel):
    """One RSS entry with its latest summary, if any."""

    id: int
    entry_id: str
    feed_id: str | None = None
    title: str | None = None
    url: str | None = None
    author: str | None = None
    feed_title: str | None = None
    category: str | None = None
    status: str
    published_at: dt.datetime | None = None
    collected_at: dt.datetime | None = None
    content_preview: str | None = None
    summary: str | None = None
    key_points: list[str] = Field(default_factory=list)
    topics: list[str] = Field(default_factory=list)
    sentiment: str | None = None
    model_version: str | None = None
    summarized_at: dt.datetime | None = None


class Pagination(BaseModel):
    page: int
    limit: int
    total_count: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool


class RssEntriesResponse(BaseModel):
    entries: list[RssEntry]
    pagination: Pagination


class SentimentDay(BaseModel):
    """Label counts and mean score for one UTC day."""

    date: dt.date
    positive: int = 0
    neutral: int = 0
    negative: int = 0
    total: int = 0
    average_score: float | None = None


class SentimentMetricsResponse(BaseModel):
    days: int
    daily: list[SentimentDay]
    totals: dict[str, int]
    average_score: float | None = None


class ResearchResponse(BaseModel):
    """Research feed, possibly served from cache."""

    papers: list[Paper]
    count: int
    cached: bool = False
    warning: str | None = None
