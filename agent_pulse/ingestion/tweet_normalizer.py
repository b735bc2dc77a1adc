"""
Tweet normalizer: crawler actor payload -> NormalizedRecord.

Pure transform, no I/O. Field aliases are resolved through
TWEET_FIELD_CANDIDATES in agent_pulse.ingestion.fields.
"""

import logging
import re
from collections.abc import Iterable

from agent_pulse.ingestion.fields import (
    TWEET_FIELD_CANDIDATES,
    TWEET_MATCHED_TERM_FIELDS,
    MissingRequiredFieldError,
    RawPayload,
    coalesce,
    coalesce_count,
    coalesce_text,
    collect_terms,
    parse_timestamp,
    require_text,
)
from agent_pulse.ingestion.schemas import (
    EngagementMetrics,
    NormalizationContext,
    NormalizedRecord,
    Platform,
    RecordStatus,
)

logger = logging.getLogger(__name__)

COLLECTOR_NAME = "apify-actor"


def extract_platform_id(item: RawPayload) -> str | None:
    """Resolve the tweet id without normalizing the rest of the item."""
    return coalesce_text(item, TWEET_FIELD_CANDIDATES["platform_id"])


def _contains_word(term: str, keyword: str) -> bool:
    """True when ``keyword`` occurs in ``term`` bounded by non-word characters."""
    return re.search(rf"(?<!\w){re.escape(keyword)}(?!\w)", term) is not None


def match_keywords(terms: Iterable[str], keywords: Iterable[str]) -> list[str]:
    """
    Intersect self-reported match terms with the run keyword set.

    A run keyword is evidenced when a term equals it or contains it as a
    whole word (search terms often carry operators, e.g.
    ``"cursor ide lang:en"``), so ``"amp"`` does not match ``"example"``.
    Matching is case-insensitive. With no run keywords the terms are
    returned as reported.

    Args:
        terms: Terms the crawler says this item matched.
        keywords: Keywords configured for the run.

    Returns:
        Sorted, deduplicated list of evidenced keywords.
    """
    normalized_terms = {t.strip().lower() for t in terms if t and t.strip()}
    normalized_keywords = {k.strip().lower() for k in keywords if k and k.strip()}

    if not normalized_keywords:
        return sorted(normalized_terms)

    return sorted(
        keyword
        for keyword in normalized_keywords
        if any(_contains_word(term, keyword) for term in normalized_terms)
    )


def build_tweet_url(handle: str | None, platform_id: str, host: str = "x.com") -> str | None:
    """Synthesize a status URL; None when the author handle is unknown."""
    if not handle:
        return None
    return f"https://{host}/{handle.lstrip('@')}/status/{platform_id}"


def normalize_tweet(item: RawPayload, context: NormalizationContext) -> NormalizedRecord:
    """
    Map one crawler tweet payload to a NormalizedRecord.

    Args:
        item: Raw tweet object as returned by the crawler dataset.
        context: Run-level inputs (run id, collection time, keywords).

    Returns:
        Record in ``pending_sentiment`` status.

    Raises:
        MissingRequiredFieldError: No id or no body text could be resolved,
            or the date is unusable under the ``reject`` policy.
    """
    table = TWEET_FIELD_CANDIDATES

    platform_id = require_text(item, "platform_id", table)
    content = require_text(item, "content", table)

    author_handle = coalesce_text(item, table["author_handle"])
    author_name = coalesce_text(item, table["author_name"])

    url = coalesce_text(item, table["url"]) or build_tweet_url(
        author_handle, platform_id, context.url_host
    )

    model_context: dict = {"collector": COLLECTOR_NAME}
    if context.run_id:
        model_context["run_id"] = context.run_id

    raw_date = coalesce(item, table["published_at"])
    published_at = parse_timestamp(raw_date)
    if published_at is None:
        if context.timestamp_policy == "reject":
            raise MissingRequiredFieldError("published_at", table["published_at"])
        logger.warning(
            "Unparseable tweet timestamp %r for %s, using collection time",
            raw_date,
            platform_id,
        )
        published_at = context.collected_at
        model_context["timestamp_fallback"] = True

    engagement = EngagementMetrics(
        likes=coalesce_count(item, table["likes"]),
        retweets=coalesce_count(item, table["retweets"]),
        replies=coalesce_count(item, table["replies"]),
        quotes=coalesce_count(item, table["quotes"]),
    )

    terms = collect_terms(item, TWEET_MATCHED_TERM_FIELDS)

    return NormalizedRecord(
        platform=Platform.TWITTER,
        platform_id=platform_id,
        content=content,
        url=url,
        author_handle=author_handle,
        author_name=author_name,
        language=coalesce_text(item, table["language"]),
        published_at=published_at,
        collected_at=context.collected_at,
        engagement=None if engagement.is_empty else engagement,
        keyword_snapshot=match_keywords(terms, context.keywords),
        status=RecordStatus.PENDING_SENTIMENT,
        status_changed_at=context.collected_at,
        run_id=context.run_id,
        raw_item_id=context.raw_item_id,
        model_context=model_context,
    )
