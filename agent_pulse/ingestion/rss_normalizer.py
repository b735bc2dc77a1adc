"""
RSS normalizer: feed aggregator entry -> NormalizedRecord.

Entries come from the Miniflux API with HTML bodies. The body is reduced
to text here; category resolution is delegated to the CategoryResolver so
the precedence rules live in one place.
"""

import html
import logging
import re

from bs4 import BeautifulSoup

from agent_pulse.categories.resolver import CategoryResolver
from agent_pulse.ingestion.fields import (
    RSS_FIELD_CANDIDATES,
    MissingRequiredFieldError,
    RawPayload,
    coalesce,
    coalesce_text,
    parse_timestamp,
    require_text,
)
from agent_pulse.ingestion.schemas import (
    ContentCategory,
    NormalizationContext,
    NormalizedRecord,
    Platform,
    RecordStatus,
)

logger = logging.getLogger(__name__)

COLLECTOR_NAME = "miniflux"

_WHITESPACE_RE = re.compile(r"\s+")


def strip_html(html_content: str | None) -> str:
    """
    Reduce an HTML fragment to plain text.

    Args:
        html_content: Raw HTML string

    Returns:
        Clean text content
    """
    if not html_content:
        return ""

    soup = BeautifulSoup(html_content, "html.parser")

    for element in soup(["script", "style", "nav", "footer", "header"]):
        element.decompose()

    text = html.unescape(soup.get_text(separator=" "))
    return _WHITESPACE_RE.sub(" ", text).strip()


def extract_entry_key(item: RawPayload) -> tuple[str | None, str | None]:
    """Resolve (feed_id, entry_id) without normalizing the rest of the entry."""
    return (
        coalesce_text(item, RSS_FIELD_CANDIDATES["feed_id"]),
        coalesce_text(item, RSS_FIELD_CANDIDATES["platform_id"]),
    )


def _resolve_body(item: RawPayload) -> str:
    """First candidate whose stripped text is non-empty."""
    for path in RSS_FIELD_CANDIDATES["content"]:
        value = coalesce(item, (path,))
        if isinstance(value, str):
            text = strip_html(value)
            if text:
                return text
    raise MissingRequiredFieldError("content", RSS_FIELD_CANDIDATES["content"])


def normalize_rss_entry(
    item: RawPayload,
    context: NormalizationContext,
    resolver: CategoryResolver | None = None,
) -> NormalizedRecord:
    """
    Map one aggregator entry to a NormalizedRecord.

    Args:
        item: Raw Miniflux entry (``id``, ``feed_id``, ``title``, ``url``,
            ``content``, ``published_at``, ``feed{id,title,category{title}}``).
        context: Run-level inputs.
        resolver: Category resolver; entries are left ``uncategorized``
            when omitted.

    Returns:
        Record in ``pending_summary`` status.

    Raises:
        MissingRequiredFieldError: No entry id, feed id, or usable body.
    """
    table = RSS_FIELD_CANDIDATES

    platform_id = require_text(item, "platform_id", table)
    feed_id = require_text(item, "feed_id", table)
    content = _resolve_body(item)

    title = coalesce_text(item, table["title"])
    url = coalesce_text(item, table["url"])
    feed_title = coalesce_text(item, table["feed_title"])
    feed_category = coalesce_text(item, table["feed_category"])

    model_context: dict = {"collector": COLLECTOR_NAME}
    if context.run_id:
        model_context["run_id"] = context.run_id

    raw_date = coalesce(item, table["published_at"])
    published_at = parse_timestamp(raw_date)
    if published_at is None:
        if context.timestamp_policy == "reject":
            raise MissingRequiredFieldError("published_at", table["published_at"])
        logger.warning(
            "Unparseable entry timestamp %r for entry %s, using collection time",
            raw_date,
            platform_id,
        )
        published_at = context.collected_at
        model_context["timestamp_fallback"] = True

    category = ContentCategory.UNCATEGORIZED
    if resolver is not None:
        decision = resolver.resolve(
            url=url,
            feed_category=feed_category,
            title=title,
            content=content,
            feed_title=feed_title,
        )
        category = decision.category
        model_context["category_reason"] = decision.reason

    return NormalizedRecord(
        platform=Platform.RSS,
        platform_id=platform_id,
        feed_id=feed_id,
        content=content,
        title=title,
        url=url,
        author_name=coalesce_text(item, table["author_name"]),
        feed_title=feed_title,
        published_at=published_at,
        collected_at=context.collected_at,
        category=category,
        status=RecordStatus.PENDING_SUMMARY,
        status_changed_at=context.collected_at,
        run_id=context.run_id,
        raw_item_id=context.raw_item_id,
        model_context=model_context,
    )
