"""Fixtures for normalizer and deduplication tests."""

from datetime import datetime, timezone

import pytest

from agent_pulse.ingestion.schemas import NormalizationContext

COLLECTED_AT = datetime(2026, 3, 2, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def tweet_context() -> NormalizationContext:
    return NormalizationContext(
        run_id="run-1",
        collected_at=COLLECTED_AT,
        keywords=frozenset({"claude code", "cursor"}),
    )


@pytest.fixture
def rss_context() -> NormalizationContext:
    return NormalizationContext(run_id="run-2", collected_at=COLLECTED_AT)


@pytest.fixture
def apify_tweet() -> dict:
    """Tweet payload in the flattened scraper shape."""
    return {
        "id": "1790000000000000001",
        "fullText": "Trying Claude Code on a legacy repo today",
        "author": {"userName": "ignored", "username": "dev_anna", "name": "Anna"},
        "createdAt": "Wed Mar 04 10:15:00 +0000 2026",
        "lang": "en",
        "likeCount": 12,
        "retweetCount": 3,
        "replyCount": 1,
        "searchTerms": ["claude code lang:en"],
    }


@pytest.fixture
def miniflux_entry() -> dict:
    """Entry as returned by the Miniflux /v1/entries endpoint."""
    return {
        "id": 5501,
        "feed_id": 42,
        "title": "Agent mode is now generally available",
        "url": "https://blog.example.com/agent-mode-ga",
        "author": "Example Team",
        "content": "<p>The new <b>agent mode</b> ships today.</p><script>track()</script>",
        "published_at": "2026-03-01T18:00:00Z",
        "feed": {"id": 42, "title": "Example Engineering", "category": {"title": "Product Updates"}},
    }
