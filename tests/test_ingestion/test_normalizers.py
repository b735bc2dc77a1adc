"""Tests for the tweet and RSS normalizers."""

from datetime import datetime, timezone

import pytest

from agent_pulse.categories.resolver import CategoryResolver
from agent_pulse.ingestion.fields import MissingRequiredFieldError
from agent_pulse.ingestion.rss_normalizer import (
    extract_entry_key,
    normalize_rss_entry,
    strip_html,
)
from agent_pulse.ingestion.schemas import NormalizationContext, NaturalKey
from agent_pulse.ingestion.tweet_normalizer import (
    build_tweet_url,
    extract_platform_id,
    match_keywords,
    normalize_tweet,
)


class TestNormalizeTweet:
    """Tests for normalize_tweet."""

    def test_minimal_tweet_without_author_or_url(self, tweet_context):
        """id_str plus full_text is enough; the URL stays empty without a handle."""
        record = normalize_tweet({"id_str": "123", "full_text": "hello"}, tweet_context)

        assert record.platform_id == "123"
        assert record.content == "hello"
        assert record.url is None
        assert record.author_handle is None
        assert record.status == "pending_sentiment"

    def test_scraper_shape(self, apify_tweet, tweet_context):
        """Flattened scraper fields resolve through the candidate table."""
        record = normalize_tweet(apify_tweet, tweet_context)

        assert record.platform == "twitter"
        assert record.platform_id == "1790000000000000001"
        assert record.content == "Trying Claude Code on a legacy repo today"
        assert record.author_handle == "dev_anna"
        assert record.author_name == "Anna"
        assert record.url == "https://x.com/dev_anna/status/1790000000000000001"
        assert record.published_at == datetime(2026, 3, 4, 10, 15, tzinfo=timezone.utc)
        assert record.language == "en"
        assert record.engagement.likes == 12
        assert record.engagement.retweets == 3
        assert record.engagement.quotes is None
        assert record.keyword_snapshot == ["claude code"]
        assert record.run_id == "run-1"

    def test_explicit_id_wins_over_later_candidates(self, tweet_context):
        item = {"id": 42, "id_str": "43", "tweetId": "44", "text": "hi"}
        assert normalize_tweet(item, tweet_context).platform_id == "42"

    def test_full_text_preferred_over_text(self, tweet_context):
        item = {"id": "1", "full_text": "long form", "text": "short"}
        assert normalize_tweet(item, tweet_context).content == "long form"

    def test_missing_id_raises(self, tweet_context):
        with pytest.raises(MissingRequiredFieldError) as exc_info:
            normalize_tweet({"full_text": "no id here"}, tweet_context)
        assert exc_info.value.field == "platform_id"

    def test_blank_content_raises(self, tweet_context):
        with pytest.raises(MissingRequiredFieldError) as exc_info:
            normalize_tweet({"id": "9", "full_text": "   "}, tweet_context)
        assert exc_info.value.field == "content"

    def test_unparseable_date_falls_back_to_collection_time(self, tweet_context):
        record = normalize_tweet(
            {"id": "1", "text": "hi", "createdAt": "not a date"}, tweet_context
        )
        assert record.published_at == tweet_context.collected_at
        assert record.model_context["timestamp_fallback"] is True

    def test_unparseable_date_rejected_under_reject_policy(self):
        context = NormalizationContext(timestamp_policy="reject")
        with pytest.raises(MissingRequiredFieldError) as exc_info:
            normalize_tweet({"id": "1", "text": "hi", "createdAt": "garbage"}, context)
        assert exc_info.value.field == "published_at"

    def test_deterministic_natural_key(self, apify_tweet, tweet_context):
        first = normalize_tweet(apify_tweet, tweet_context)
        second = normalize_tweet(dict(apify_tweet), tweet_context)
        assert first.natural_key == second.natural_key == NaturalKey("twitter", "1790000000000000001")

    def test_engagement_omitted_when_no_counters(self, tweet_context):
        record = normalize_tweet({"id": "1", "text": "hi"}, tweet_context)
        assert record.engagement is None

    def test_infinite_counter_is_dropped(self, tweet_context):
        """A JSON Infinity counter is treated as absent instead of aborting the item."""
        record = normalize_tweet(
            {"id_str": "9", "full_text": "hi", "likeCount": float("inf")}, tweet_context
        )
        assert record.engagement is None


class TestTweetHelpers:
    """Tests for tweet normalizer helpers."""

    def test_extract_platform_id_numeric(self):
        assert extract_platform_id({"id": 1790000000000000001}) == "1790000000000000001"

    def test_extract_platform_id_missing(self):
        assert extract_platform_id({"text": "x"}) is None

    def test_match_keywords_word_inside_search_term(self):
        terms = ["Cursor IDE lang:en", "unrelated"]
        assert match_keywords(terms, {"cursor", "codex"}) == ["cursor"]

    def test_match_keywords_requires_whole_word(self):
        assert match_keywords(["example prompt"], {"amp"}) == []
        assert match_keywords(["codexample"], {"codex"}) == []
        assert match_keywords(["#codex rocks"], {"codex"}) == ["codex"]

    def test_match_keywords_without_run_keywords(self):
        assert match_keywords(["B", "a", "a"], []) == ["a", "b"]

    def test_build_tweet_url_strips_at(self):
        assert build_tweet_url("@anna", "7") == "https://x.com/anna/status/7"

    def test_build_tweet_url_without_handle(self):
        assert build_tweet_url(None, "7") is None


class TestNormalizeRssEntry:
    """Tests for normalize_rss_entry."""

    def test_miniflux_entry(self, miniflux_entry, rss_context):
        record = normalize_rss_entry(miniflux_entry, rss_context, CategoryResolver())

        assert record.platform == "rss"
        assert record.platform_id == "5501"
        assert record.feed_id == "42"
        assert record.content == "The new agent mode ships today."
        assert record.title == "Agent mode is now generally available"
        assert record.author_name == "Example Team"
        assert record.feed_title == "Example Engineering"
        assert record.category == "product_updates"
        assert record.model_context["category_reason"] == "folder"
        assert record.status == "pending_summary"
        assert record.natural_key == NaturalKey("rss", "5501", "42")

    def test_without_resolver_is_uncategorized(self, miniflux_entry, rss_context):
        record = normalize_rss_entry(miniflux_entry, rss_context)
        assert record.category == "uncategorized"

    def test_falls_back_to_title_when_body_empty(self, miniflux_entry, rss_context):
        miniflux_entry["content"] = "<div> </div>"
        record = normalize_rss_entry(miniflux_entry, rss_context)
        assert record.content == "Agent mode is now generally available"

    def test_missing_feed_id_raises(self, miniflux_entry, rss_context):
        del miniflux_entry["feed_id"]
        del miniflux_entry["feed"]
        with pytest.raises(MissingRequiredFieldError) as exc_info:
            normalize_rss_entry(miniflux_entry, rss_context)
        assert exc_info.value.field == "feed_id"

    def test_research_folder_beats_opinion_keywords(self, rss_context):
        """Folder precedence holds even when body keywords point elsewhere."""
        entry = {
            "id": 1,
            "feed_id": 9,
            "title": "An opinion editorial",
            "content": "<p>My opinion: this editorial is an opinion piece. Editorial opinion.</p>",
            "published_at": "2026-03-01T00:00:00Z",
            "feed": {"id": 9, "title": "Misc", "category": {"title": "Research Papers"}},
        }
        record = normalize_rss_entry(entry, rss_context, CategoryResolver())
        assert record.category == "industry_research"


class TestRssHelpers:
    """Tests for RSS normalizer helpers."""

    def test_strip_html_removes_scripts_and_collapses_whitespace(self):
        html = "<p>Hello&nbsp;\n\n<b>world</b></p><style>p{}</style>"
        assert strip_html(html) == "Hello world"

    def test_strip_html_empty(self):
        assert strip_html(None) == ""

    def test_extract_entry_key_prefers_top_level_feed_id(self, miniflux_entry):
        assert extract_entry_key(miniflux_entry) == ("42", "5501")

    def test_extract_entry_key_nested_feed(self):
        assert extract_entry_key({"id": 3, "feed": {"id": 8}}) == ("8", "3")
