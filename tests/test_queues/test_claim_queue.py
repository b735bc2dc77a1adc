"""Tests for the database-backed enrichment claim queue."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from agent_pulse.ingestion.schemas import EnrichmentKind, Platform, RecordStatus
from agent_pulse.queues.claim_queue import (
    MAX_BATCH_SIZE,
    SENTIMENT_QUEUE,
    SUMMARY_QUEUE,
    ClaimQueue,
    QueueSpec,
    QueueStats,
    clamp_batch_size,
)

BASE_TIME = datetime(2026, 3, 2, 8, 0, 0, tzinfo=timezone.utc)


def make_row(record_id: int, minutes: int = 0, **overrides) -> dict:
    """A normalized_records row as RETURNING * yields it."""
    row = {
        "id": record_id,
        "platform": "twitter",
        "platform_id": str(1000 + record_id),
        "feed_id": None,
        "content": f"record {record_id}",
        "title": None,
        "url": None,
        "author_handle": None,
        "author_name": None,
        "feed_title": None,
        "language": None,
        "published_at": BASE_TIME,
        "collected_at": BASE_TIME + timedelta(minutes=minutes),
        "engagement": None,
        "keyword_snapshot": [],
        "category": None,
        "status": "processing",
        "status_changed_at": BASE_TIME,
        "attempt_count": 1,
        "revision": 1,
        "run_id": "run-1",
        "raw_item_id": None,
        "model_context": {},
    }
    row.update(overrides)
    return row


class TestQueueSpec:
    """Tests for per-platform queue bindings."""

    def test_sentiment_queue(self):
        assert SENTIMENT_QUEUE.platform == Platform.TWITTER
        assert SENTIMENT_QUEUE.pending_status == RecordStatus.PENDING_SENTIMENT
        assert SENTIMENT_QUEUE.done_status == RecordStatus.PROCESSED
        assert SENTIMENT_QUEUE.kind == EnrichmentKind.SENTIMENT

    def test_summary_queue(self):
        assert SUMMARY_QUEUE.pending_status == RecordStatus.PENDING_SUMMARY
        assert SUMMARY_QUEUE.done_status == RecordStatus.SUMMARIZED

    def test_invalid_pending_status_rejected(self, mock_db):
        bad = QueueSpec(
            platform=Platform.TWITTER,
            pending_status=RecordStatus.PROCESSED,
            done_status=RecordStatus.PROCESSED,
            kind=EnrichmentKind.SENTIMENT,
        )
        with pytest.raises(ValueError):
            ClaimQueue(mock_db, bad)


class TestClampBatchSize:
    """Tests for claim batch bounds."""

    @pytest.mark.parametrize(
        "requested,expected",
        [(0, 1), (-5, 1), (10, 10), (MAX_BATCH_SIZE, MAX_BATCH_SIZE), (10_000, MAX_BATCH_SIZE)],
    )
    def test_clamp(self, requested, expected):
        assert clamp_batch_size(requested) == expected


class TestClaim:
    """Tests for ClaimQueue.claim."""

    @pytest.mark.asyncio
    async def test_claim_passes_platform_status_and_limits(self, mock_db):
        queue = ClaimQueue(mock_db, SENTIMENT_QUEUE)

        await queue.claim(batch_size=10, max_attempts=3)

        args = mock_db.fetch.await_args.args
        assert "FOR UPDATE SKIP LOCKED" in args[0]
        assert args[1:] == ("twitter", "pending_sentiment", 3, 10)

    @pytest.mark.asyncio
    async def test_oversized_batch_is_clamped(self, mock_db):
        queue = ClaimQueue(mock_db, SUMMARY_QUEUE)

        await queue.claim(batch_size=5000, max_attempts=3)

        assert mock_db.fetch.await_args.args[-1] == MAX_BATCH_SIZE

    @pytest.mark.asyncio
    async def test_claimed_records_sorted_oldest_first(self, mock_db):
        mock_db.fetch.return_value = [
            make_row(3, minutes=5),
            make_row(1, minutes=0),
            make_row(2, minutes=5),
        ]
        queue = ClaimQueue(mock_db, SENTIMENT_QUEUE)

        records = await queue.claim(batch_size=10, max_attempts=3)

        assert [r.id for r in records] == [1, 2, 3]
        assert all(r.status == "processing" for r in records)

    @pytest.mark.asyncio
    async def test_empty_queue(self, mock_db):
        queue = ClaimQueue(mock_db, SENTIMENT_QUEUE)
        assert await queue.claim(batch_size=10, max_attempts=3) == []


class TestResetStuck:
    """Tests for ClaimQueue.reset_stuck."""

    @pytest.mark.asyncio
    async def test_reset_targets_processing_rows_past_timeout(self, mock_db):
        mock_db.fetch.return_value = [{"id": 4}, {"id": 9}]
        queue = ClaimQueue(mock_db, SUMMARY_QUEUE)

        ids = await queue.reset_stuck(timeout_minutes=30, max_attempts=3)

        sql, *params = mock_db.fetch.await_args.args
        assert "status = 'processing'" in sql
        assert "attempt_count < $4" in sql
        assert params == ["rss", "pending_summary", 30, 3]
        assert ids == [4, 9]

    @pytest.mark.asyncio
    async def test_without_cap_resets_every_stale_claim(self, mock_db):
        queue = ClaimQueue(mock_db, SUMMARY_QUEUE)

        await queue.reset_stuck(timeout_minutes=10)

        sql, *params = mock_db.fetch.await_args.args
        assert "$4::int IS NULL" in sql
        assert params == ["rss", "pending_summary", 10, None]


class TestExpireStuck:
    """Tests for ClaimQueue.expire_stuck."""

    @pytest.mark.asyncio
    async def test_fails_stale_claims_with_no_attempts_left(self, mock_db):
        mock_db.fetch.return_value = [{"id": 7, "attempt_count": 3}]
        queue = ClaimQueue(mock_db, SENTIMENT_QUEUE)

        expired = await queue.expire_stuck(timeout_minutes=30, max_attempts=3)

        sql, *params = mock_db.fetch.await_args.args
        assert "SET status = 'failed'" in sql
        assert "status = 'processing'" in sql
        assert "attempt_count >= $3" in sql
        assert params == ["twitter", 30, 3]
        assert expired == [(7, 3)]

    @pytest.mark.asyncio
    async def test_nothing_to_expire(self, mock_db):
        queue = ClaimQueue(mock_db, SENTIMENT_QUEUE)
        assert await queue.expire_stuck(timeout_minutes=30, max_attempts=3) == []


class TestQueueDepth:
    """Tests for ClaimQueue.queue_depth."""

    @pytest.mark.asyncio
    async def test_depth(self, mock_db):
        mock_db.fetchval.return_value = 17
        queue = ClaimQueue(mock_db, SENTIMENT_QUEUE)

        assert await queue.queue_depth() == 17
        assert mock_db.fetchval.await_args.args[1:] == ("twitter", "pending_sentiment")

    @pytest.mark.asyncio
    async def test_depth_none_is_zero(self, mock_db):
        mock_db.fetchval.return_value = None
        assert await ClaimQueue(mock_db, SENTIMENT_QUEUE).queue_depth() == 0


class TestQueueStats:
    """Tests for ClaimQueue.queue_stats."""

    @pytest.mark.asyncio
    async def test_counts_and_failure_rate(self, mock_db):
        mock_db.fetchrow = AsyncMock(
            return_value={"pending": 7, "stuck": 2, "recent_total": 20, "recent_failed": 5}
        )
        queue = ClaimQueue(mock_db, SUMMARY_QUEUE)

        stats = await queue.queue_stats(30, window_hours=24)

        sql, *params = mock_db.fetchrow.await_args.args
        assert "status = 'processing'" in sql
        assert "status = 'failed'" in sql
        assert params == ["rss", "pending_summary", 30, 24]
        assert stats.pending == 7
        assert stats.stuck == 2
        assert stats.failure_rate == 25.0

    @pytest.mark.asyncio
    async def test_no_row_is_all_zero(self, mock_db):
        mock_db.fetchrow = AsyncMock(return_value=None)

        stats = await ClaimQueue(mock_db, SENTIMENT_QUEUE).queue_stats(30, window_hours=12)

        assert stats == QueueStats(window_hours=12)
        assert stats.failure_rate == 0.0
