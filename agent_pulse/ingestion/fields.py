"""
Field-candidate tables and coalescing helpers for raw crawler payloads.

Crawler actors and aggregators rename fields between versions (``id`` vs
``id_str`` vs ``tweetId``; ``full_text`` vs ``text``). Each logical field
is resolved from an ordered tuple of dotted source paths; the first path
that yields a non-None value wins. The tables below ARE the priority
order: explicit identifier fields come before derived ones, structured
API shapes (``public_metrics``) before flattened scraper shapes.
"""

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Union

logger = logging.getLogger(__name__)

# A raw payload is an untyped JSON object; values may be nested objects,
# lists, or scalars.
JSONScalar = Union[str, int, float, bool, None]
RawPayload = Mapping[str, Any]

TWEET_FIELD_CANDIDATES: dict[str, tuple[str, ...]] = {
    "platform_id": ("id", "id_str", "tweetId", "tweet_id"),
    "content": ("full_text", "fullText", "text"),
    "author_handle": (
        "author.username",
        "author.screenName",
        "user.username",
        "user.screen_name",
        "user.screenName",
        "authorUsername",
        "authorScreenName",
    ),
    "author_name": ("author.name", "user.name", "user.fullName", "authorName"),
    "url": ("url", "tweetUrl"),
    "published_at": ("createdAt", "created_at", "date"),
    "language": ("lang", "language"),
    "likes": (
        "public_metrics.like_count",
        "metrics.likeCount",
        "likeCount",
        "favoriteCount",
        "favorite_count",
    ),
    "retweets": (
        "public_metrics.retweet_count",
        "metrics.retweetCount",
        "retweetCount",
        "retweet_count",
    ),
    "replies": (
        "public_metrics.reply_count",
        "metrics.replyCount",
        "replyCount",
        "reply_count",
    ),
    "quotes": (
        "public_metrics.quote_count",
        "metrics.quoteCount",
        "quoteCount",
        "quote_count",
    ),
}

# Self-reported match lists are unioned rather than coalesced.
TWEET_MATCHED_TERM_FIELDS: tuple[str, ...] = (
    "matchedKeywords",
    "matchedQueries",
    "searchTerms",
    "searchTerm",
)

RSS_FIELD_CANDIDATES: dict[str, tuple[str, ...]] = {
    "platform_id": ("id",),
    "feed_id": ("feed_id", "feed.id"),
    "content": ("content", "summary", "title"),
    "title": ("title",),
    "url": ("url",),
    "author_name": ("author",),
    "feed_title": ("feed.title",),
    "feed_category": ("feed.category.title",),
    "published_at": ("published_at", "date", "created_at"),
}


class MissingRequiredFieldError(ValueError):
    """Raised when no candidate resolves for a required field.

    The item is unusable; callers skip and count it rather than abort
    the batch.
    """

    def __init__(self, field: str, candidates: Iterable[str] = ()):
        self.field = field
        self.candidates = tuple(candidates)
        detail = f" (tried: {', '.join(self.candidates)})" if self.candidates else ""
        super().__init__(f"Missing required field '{field}'{detail}")


def get_path(item: RawPayload, path: str) -> Any:
    """Read a dotted path from nested mappings, returning None when absent."""
    current: Any = item
    for part in path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
        if current is None:
            return None
    return current


def coalesce(item: RawPayload, paths: Iterable[str]) -> Any:
    """Return the first non-None value among ``paths``."""
    for path in paths:
        value = get_path(item, path)
        if value is not None:
            return value
    return None


def coalesce_text(item: RawPayload, paths: Iterable[str]) -> str | None:
    """Like coalesce, but skips blank strings and stringifies numeric ids."""
    for path in paths:
        value = get_path(item, path)
        if value is None or isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            return str(int(value)) if float(value).is_integer() else str(value)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def require_text(item: RawPayload, field: str, table: Mapping[str, tuple[str, ...]]) -> str:
    """Resolve a required text field or raise MissingRequiredFieldError."""
    paths = table[field]
    value = coalesce_text(item, paths)
    if value is None:
        raise MissingRequiredFieldError(field, paths)
    return value


def coalesce_count(item: RawPayload, paths: Iterable[str]) -> int | None:
    """Resolve a non-negative counter; unparseable values count as absent."""
    value = coalesce(item, paths)
    if value is None or isinstance(value, bool):
        return None
    try:
        count = int(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return count if count >= 0 else None


def parse_timestamp(value: Any) -> datetime | None:
    """
    Parse a crawler timestamp into an aware UTC datetime.

    Accepts datetimes, epoch seconds or milliseconds, ISO-8601 strings
    (with ``Z`` suffix), the classic Twitter format
    (``Wed Oct 10 20:19:24 +0000 2018``), and RFC 2822 dates from feeds.

    Returns:
        Parsed datetime, or None if the value cannot be interpreted.
    """
    if value is None or isinstance(value, bool):
        return None

    parsed: datetime | None = None
    try:
        if isinstance(value, datetime):
            parsed = value
        elif isinstance(value, (int, float)):
            seconds = value / 1000 if value > 1e12 else value
            parsed = datetime.fromtimestamp(seconds, tz=timezone.utc)
        elif isinstance(value, str) and value.strip():
            text = value.strip()
            try:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                try:
                    parsed = datetime.strptime(text, "%a %b %d %H:%M:%S %z %Y")
                except ValueError:
                    parsed = parsedate_to_datetime(text)
    except (ValueError, TypeError, OverflowError, OSError) as e:
        logger.debug("Failed to parse timestamp %r: %s", value, e)
        return None

    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def collect_terms(item: RawPayload, paths: Iterable[str]) -> list[str]:
    """Union string terms from list-or-scalar fields, lowercased and trimmed."""
    terms: list[str] = []
    for path in paths:
        value = get_path(item, path)
        if value is None:
            continue
        values = value if isinstance(value, (list, tuple, set)) else [value]
        for term in values:
            if isinstance(term, str) and term.strip():
                terms.append(term.strip().lower())
    return terms
