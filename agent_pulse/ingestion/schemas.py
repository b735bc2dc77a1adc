"""
Canonical record schema for the agent-pulse pipeline.

Every collector (tweet crawler, RSS aggregator) produces NormalizedRecord
instances. The repository, the enrichment processor, and the dashboard
endpoints all read the field names defined here, so renames must be
carried through storage/repository.py as well.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, NamedTuple

from pydantic import BaseModel, Field, field_validator


def _utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class Platform(str, Enum):
    """Supported content sources."""

    TWITTER = "twitter"
    RSS = "rss"


class RecordStatus(str, Enum):
    """Enrichment lifecycle state of a normalized record."""

    PENDING_SENTIMENT = "pending_sentiment"
    PENDING_SUMMARY = "pending_summary"
    PROCESSING = "processing"
    PROCESSED = "processed"
    SUMMARIZED = "summarized"
    FAILED = "failed"


class ContentCategory(str, Enum):
    """Closed set of RSS article categories."""

    PRODUCT_UPDATES = "product_updates"
    INDUSTRY_RESEARCH = "industry_research"
    PERSPECTIVES = "perspectives"
    UNCATEGORIZED = "uncategorized"


class EnrichmentKind(str, Enum):
    """Second-stage processing applied to a persisted record."""

    SENTIMENT = "sentiment"
    SUMMARY = "summary"


class NaturalKey(NamedTuple):
    """Externally meaningful identity of a record.

    Tweets are keyed by (platform, platform_id); RSS entries by
    (feed_id, platform_id), with the platform carried along so keys from
    different sources never collide.
    """

    platform: str
    platform_id: str
    feed_id: str | None = None


class EngagementMetrics(BaseModel):
    """
    Platform engagement signals.

    Only tweets carry engagement today. Every field is nullable because
    crawler payloads omit counters they could not read, and a missing
    counter must not be stored as zero.
    """

    likes: int | None = Field(default=None, ge=0, description="Likes / favorites")
    retweets: int | None = Field(default=None, ge=0, description="Retweets / reposts")
    replies: int | None = Field(default=None, ge=0, description="Reply count")
    quotes: int | None = Field(default=None, ge=0, description="Quote count")

    @property
    def is_empty(self) -> bool:
        """True when no counter was reported."""
        return all(
            v is None for v in (self.likes, self.retweets, self.replies, self.quotes)
        )


class NormalizedRecord(BaseModel):
    """
    CANONICAL RECORD SCHEMA

    Produced by the tweet and RSS normalizers, persisted by
    RecordRepository, claimed and enriched by the enrichment processor.
    """

    # Identity (id is assigned by the database)
    id: int | None = Field(default=None, description="Surrogate key, set at persistence")
    platform: Platform = Field(..., description="Source platform")
    platform_id: str = Field(..., min_length=1, description="Tweet id or feed entry id")
    feed_id: str | None = Field(default=None, description="Feed id for RSS entries")

    # Content
    content: str = Field(..., min_length=1, description="Body text, HTML stripped")
    title: str | None = Field(default=None)
    url: str | None = Field(default=None)
    author_handle: str | None = Field(default=None)
    author_name: str | None = Field(default=None)
    feed_title: str | None = Field(default=None)
    language: str | None = Field(default=None)

    # Timestamps
    published_at: datetime = Field(..., description="Creation time on the source")
    collected_at: datetime = Field(default_factory=_utc_now)

    # Signals
    engagement: EngagementMetrics | None = Field(default=None)
    keyword_snapshot: list[str] = Field(
        default_factory=list,
        description="Run keywords evidenced by this item",
    )
    category: ContentCategory | None = Field(default=None, description="RSS only")

    # Lifecycle
    status: RecordStatus = Field(...)
    status_changed_at: datetime = Field(default_factory=_utc_now)
    attempt_count: int = Field(default=0, ge=0)
    revision: int = Field(default=1, ge=1)

    # Provenance
    run_id: str | None = Field(default=None)
    raw_item_id: int | None = Field(default=None)
    model_context: dict[str, Any] = Field(default_factory=dict)

    model_config = {"use_enum_values": True}

    @field_validator("keyword_snapshot")
    @classmethod
    def normalize_keywords(cls, v: list[str]) -> list[str]:
        """Lowercase, dedupe, and sort so snapshots compare stably."""
        return sorted({k.strip().lower() for k in v if k and k.strip()})

    @property
    def natural_key(self) -> NaturalKey:
        """Deduplication key for this record."""
        platform = self.platform.value if isinstance(self.platform, Enum) else self.platform
        return NaturalKey(platform, self.platform_id, self.feed_id)

    def content_preview(self, limit: int = 500) -> str:
        """Leading slice of the body, used in failure payloads."""
        return self.content[:limit]


class RawItem(BaseModel):
    """Crawler payload as received, kept as an append-only audit row."""

    id: int | None = Field(default=None)
    platform: Platform
    platform_id: str | None = Field(default=None)
    run_id: str | None = Field(default=None)
    payload: dict[str, Any] = Field(default_factory=dict)
    collected_at: datetime = Field(default_factory=_utc_now)
    ingestion_reason: str = Field(default="initial")

    model_config = {"use_enum_values": True}


@dataclass(frozen=True)
class NormalizationContext:
    """Per-run inputs that the normalizers need besides the raw item.

    Attributes:
        run_id: Run ledger id for provenance.
        collected_at: When the crawler returned the item.
        raw_item_id: Id of the persisted RawItem, if one was written first.
        keywords: Keyword set active for this run (lowercased).
        timestamp_policy: "now" substitutes collected_at for unparseable
            dates; "reject" raises MissingRequiredFieldError instead.
        url_host: Host used when a tweet URL has to be synthesized.
    """

    run_id: str | None = None
    collected_at: datetime = field(default_factory=_utc_now)
    raw_item_id: int | None = None
    keywords: frozenset[str] = frozenset()
    timestamp_policy: str = "now"
    url_host: str = "x.com"
