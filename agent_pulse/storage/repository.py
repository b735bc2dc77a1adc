"""
Repository for normalized records, raw crawler items, and enrichment results.

All record mutation outside the claim queue and the ledgers goes through
this class. Natural-key uniqueness is enforced by partial unique indexes;
inserts use ON CONFLICT DO NOTHING so a duplicate that slips past the
deduplication gate is a silent no-op rather than an error.
"""

import logging
from collections.abc import Iterable
from datetime import datetime
from enum import Enum
from typing import Any

import asyncpg

from agent_pulse.enrichment.schemas import EnrichmentResult
from agent_pulse.ingestion.schemas import (
    EngagementMetrics,
    NaturalKey,
    NormalizedRecord,
    Platform,
    RawItem,
    RecordStatus,
)
from agent_pulse.ingestion.status import InvalidStatusTransitionError, is_allowed, validate_transition
from agent_pulse.storage.database import Database, affected_rows

logger = logging.getLogger(__name__)

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS raw_items (
    id               BIGSERIAL PRIMARY KEY,
    platform         TEXT NOT NULL,
    platform_id      TEXT,
    run_id           TEXT,
    payload          JSONB NOT NULL,
    collected_at     TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    ingestion_reason TEXT NOT NULL DEFAULT 'initial'
);

CREATE INDEX IF NOT EXISTS idx_raw_items_collected_at
    ON raw_items(collected_at);

CREATE TABLE IF NOT EXISTS normalized_records (
    id                BIGSERIAL PRIMARY KEY,
    platform          TEXT NOT NULL,
    platform_id       TEXT NOT NULL,
    feed_id           TEXT,
    content           TEXT NOT NULL,
    title             TEXT,
    url               TEXT,
    author_handle     TEXT,
    author_name       TEXT,
    feed_title        TEXT,
    language          TEXT,
    published_at      TIMESTAMPTZ NOT NULL,
    collected_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    engagement        JSONB,
    keyword_snapshot  TEXT[] NOT NULL DEFAULT '{}',
    category          TEXT,
    status            TEXT NOT NULL,
    status_changed_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    attempt_count     INTEGER NOT NULL DEFAULT 0,
    revision          INTEGER NOT NULL DEFAULT 1,
    run_id            TEXT,
    raw_item_id       BIGINT REFERENCES raw_items(id) ON DELETE SET NULL,
    model_context     JSONB NOT NULL DEFAULT '{}'
);

CREATE UNIQUE INDEX IF NOT EXISTS uq_records_platform_key
    ON normalized_records(platform, platform_id) WHERE feed_id IS NULL;
CREATE UNIQUE INDEX IF NOT EXISTS uq_records_feed_key
    ON normalized_records(feed_id, platform_id) WHERE feed_id IS NOT NULL;
CREATE INDEX IF NOT EXISTS idx_records_claim
    ON normalized_records(platform, status, collected_at, id);
CREATE INDEX IF NOT EXISTS idx_records_category_published
    ON normalized_records(category, published_at DESC) WHERE platform = 'rss';

CREATE TABLE IF NOT EXISTS enrichment_results (
    id            BIGSERIAL PRIMARY KEY,
    record_id     BIGINT NOT NULL REFERENCES normalized_records(id) ON DELETE CASCADE,
    kind          TEXT NOT NULL,
    model_version TEXT NOT NULL,
    label         TEXT,
    score         DOUBLE PRECISION,
    summary       TEXT,
    key_points    JSONB NOT NULL DEFAULT '[]',
    topics        JSONB NOT NULL DEFAULT '[]',
    reasoning     JSONB NOT NULL DEFAULT '{}',
    latency_ms    INTEGER,
    token_usage   INTEGER,
    processed_at  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (record_id, kind, model_version)
);

CREATE INDEX IF NOT EXISTS idx_enrichment_results_record
    ON enrichment_results(record_id, kind, processed_at DESC);
"""

_INSERT_RAW_SQL = """
INSERT INTO raw_items (platform, platform_id, run_id, payload, collected_at, ingestion_reason)
VALUES ($1, $2, $3, $4, $5, $6)
RETURNING id
"""

_INSERT_RECORD_SQL = """
INSERT INTO normalized_records (
    platform, platform_id, feed_id, content, title, url, author_handle,
    author_name, feed_title, language, published_at, collected_at,
    engagement, keyword_snapshot, category, status, status_changed_at,
    revision, run_id, raw_item_id, model_context
)
VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15,
        $16, $17, $18, $19, $20, $21)
ON CONFLICT DO NOTHING
RETURNING id
"""

_EXISTING_KEYS_SQL = """
SELECT platform, platform_id, feed_id
FROM normalized_records
WHERE platform = $1 AND platform_id = ANY($2::text[])
"""

_UPDATE_STATUS_SQL = """
UPDATE normalized_records
SET status = $3, status_changed_at = NOW()
WHERE id = $1 AND status = $2
"""

_TRANSITION_MANY_SQL = """
UPDATE normalized_records
SET status = $2,
    status_changed_at = NOW(),
    attempt_count = CASE WHEN $4 THEN 0 ELSE attempt_count END
WHERE id = ANY($1::bigint[])
  AND status = ANY($3::text[])
  AND ($5::text IS NULL OR platform = $5)
RETURNING id
"""

_UPSERT_RESULT_SQL = """
INSERT INTO enrichment_results (
    record_id, kind, model_version, label, score, summary, key_points,
    topics, reasoning, latency_ms, token_usage, processed_at
)
VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
ON CONFLICT (record_id, kind, model_version) DO UPDATE SET
    label = EXCLUDED.label,
    score = EXCLUDED.score,
    summary = EXCLUDED.summary,
    key_points = EXCLUDED.key_points,
    topics = EXCLUDED.topics,
    reasoning = EXCLUDED.reasoning,
    latency_ms = EXCLUDED.latency_ms,
    token_usage = EXCLUDED.token_usage,
    processed_at = EXCLUDED.processed_at
RETURNING id
"""

_RSS_ENTRIES_SQL = """
SELECT r.id, r.platform_id, r.feed_id, r.title, r.url, r.author_name,
       r.feed_title, r.category, r.status, r.published_at, r.collected_at,
       LEFT(r.content, 500) AS content_preview,
       s.summary, s.key_points, s.topics, s.label AS sentiment,
       s.model_version, s.processed_at
FROM normalized_records r
LEFT JOIN LATERAL (
    SELECT summary, key_points, topics, label, model_version, processed_at
    FROM enrichment_results
    WHERE record_id = r.id AND kind = 'summary'
    ORDER BY processed_at DESC
    LIMIT 1
) s ON TRUE
WHERE {where_clause}
ORDER BY r.published_at DESC, r.id DESC
LIMIT ${limit_idx} OFFSET ${offset_idx}
"""

_SENTIMENT_DAILY_SQL = """
SELECT (r.published_at AT TIME ZONE 'UTC')::date AS day,
       e.label,
       COUNT(*) AS count,
       AVG(e.score) AS avg_score
FROM normalized_records r
JOIN enrichment_results e ON e.record_id = r.id AND e.kind = 'sentiment'
WHERE r.platform = 'twitter'
  AND r.published_at >= NOW() - make_interval(days => $1)
GROUP BY day, e.label
ORDER BY day ASC, e.label ASC
"""

_PURGE_RAW_SQL = """
DELETE FROM raw_items
WHERE collected_at < NOW() - make_interval(days => $1)
"""


def _value(v: Any) -> Any:
    """Plain value for an enum member, pass-through otherwise."""
    return v.value if isinstance(v, Enum) else v


def _record_to_normalized(record: asyncpg.Record | dict) -> NormalizedRecord:
    """Convert a normalized_records row to a NormalizedRecord."""
    engagement = record["engagement"]
    return NormalizedRecord(
        id=record["id"],
        platform=record["platform"],
        platform_id=record["platform_id"],
        feed_id=record["feed_id"],
        content=record["content"],
        title=record["title"],
        url=record["url"],
        author_handle=record["author_handle"],
        author_name=record["author_name"],
        feed_title=record["feed_title"],
        language=record["language"],
        published_at=record["published_at"],
        collected_at=record["collected_at"],
        engagement=EngagementMetrics(**engagement) if engagement else None,
        keyword_snapshot=list(record["keyword_snapshot"] or []),
        category=record["category"],
        status=record["status"],
        status_changed_at=record["status_changed_at"],
        attempt_count=record["attempt_count"],
        revision=record["revision"],
        run_id=record["run_id"],
        raw_item_id=record["raw_item_id"],
        model_context=dict(record["model_context"] or {}),
    )


class RecordRepository:
    """Typed access to normalized_records, raw_items, and enrichment_results."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_tables(self) -> None:
        """Create tables and indexes (idempotent)."""
        await self._db.execute(_CREATE_TABLES_SQL)
        logger.info("Record tables ensured")

    # -- Raw items ---------------------------------------------------------

    async def insert_raw_item(self, item: RawItem) -> int:
        """Append a raw crawler payload and return its id."""
        return await self._db.fetchval(
            _INSERT_RAW_SQL,
            _value(item.platform),
            item.platform_id,
            item.run_id,
            item.payload,
            item.collected_at,
            item.ingestion_reason,
        )

    async def purge_raw_items(self, older_than_days: int) -> int:
        """Delete raw items collected more than ``older_than_days`` ago."""
        status = await self._db.execute(_PURGE_RAW_SQL, older_than_days)
        deleted = affected_rows(status)
        logger.info("Purged %d raw items older than %d days", deleted, older_than_days)
        return deleted

    # -- Normalized records ------------------------------------------------

    async def insert_if_new(self, record: NormalizedRecord) -> int | None:
        """
        Insert a normalized record unless its natural key already exists.

        Returns:
            The new surrogate id, or None when the unique index rejected it.
        """
        engagement = record.engagement.model_dump() if record.engagement else None
        return await self._db.fetchval(
            _INSERT_RECORD_SQL,
            _value(record.platform),
            record.platform_id,
            record.feed_id,
            record.content,
            record.title,
            record.url,
            record.author_handle,
            record.author_name,
            record.feed_title,
            record.language,
            record.published_at,
            record.collected_at,
            engagement,
            list(record.keyword_snapshot),
            _value(record.category),
            _value(record.status),
            record.status_changed_at,
            record.revision,
            record.run_id,
            record.raw_item_id,
            record.model_context,
        )

    async def find_existing_keys(
        self,
        platform: Platform | str,
        platform_ids: Iterable[str],
    ) -> set[NaturalKey]:
        """Natural keys already stored for ``platform`` among ``platform_ids``."""
        ids = list(dict.fromkeys(platform_ids))
        if not ids:
            return set()
        platform_str = platform.value if isinstance(platform, Platform) else platform
        rows = await self._db.fetch(_EXISTING_KEYS_SQL, platform_str, ids)
        return {
            NaturalKey(row["platform"], row["platform_id"], row["feed_id"])
            for row in rows
        }

    async def get_by_id(self, record_id: int) -> NormalizedRecord | None:
        row = await self._db.fetchrow(
            "SELECT * FROM normalized_records WHERE id = $1", record_id
        )
        return _record_to_normalized(row) if row else None

    def _build_filters(
        self,
        *,
        platform: Platform | str | None = None,
        status: RecordStatus | str | None = None,
        category: str | None = None,
        since: datetime | None = None,
        param_idx: int = 1,
        alias: str = "",
    ) -> tuple[str, list[Any], int]:
        """
        Build WHERE clause from optional record filters.

        Returns (where_clause, params, next_param_idx).
        """
        prefix = f"{alias}." if alias else ""
        conditions: list[str] = []
        params: list[Any] = []

        if platform is not None:
            conditions.append(f"{prefix}platform = ${param_idx}")
            params.append(platform.value if isinstance(platform, Platform) else platform)
            param_idx += 1

        if status is not None:
            conditions.append(f"{prefix}status = ${param_idx}")
            params.append(RecordStatus(status).value)
            param_idx += 1

        if category is not None:
            conditions.append(f"{prefix}category = ${param_idx}")
            params.append(category)
            param_idx += 1

        if since is not None:
            conditions.append(f"{prefix}published_at >= ${param_idx}")
            params.append(since)
            param_idx += 1

        where_clause = " AND ".join(conditions) if conditions else "TRUE"
        return where_clause, params, param_idx

    async def list_records(
        self,
        *,
        platform: Platform | str | None = None,
        status: RecordStatus | str | None = None,
        category: str | None = None,
        since: datetime | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[NormalizedRecord]:
        """Select records by filter, oldest-collected first."""
        where_clause, params, idx = self._build_filters(
            platform=platform, status=status, category=category, since=since
        )
        sql = f"""
            SELECT * FROM normalized_records
            WHERE {where_clause}
            ORDER BY collected_at ASC, id ASC
            LIMIT ${idx} OFFSET ${idx + 1}
        """
        params.extend([limit, offset])
        rows = await self._db.fetch(sql, *params)
        return [_record_to_normalized(row) for row in rows]

    async def count_records(
        self,
        *,
        platform: Platform | str | None = None,
        status: RecordStatus | str | None = None,
        category: str | None = None,
        since: datetime | None = None,
    ) -> int:
        """Count records matching the same filters as list_records."""
        where_clause, params, _idx = self._build_filters(
            platform=platform, status=status, category=category, since=since
        )
        sql = f"SELECT COUNT(*) FROM normalized_records WHERE {where_clause}"
        return await self._db.fetchval(sql, *params) or 0

    async def update_status(
        self,
        record_id: int,
        from_status: RecordStatus | str,
        to_status: RecordStatus | str,
    ) -> bool:
        """
        Move one record between statuses.

        The update is conditional on the current status, so a record that
        another invocation already moved is left alone.

        Returns:
            True if the row was updated.

        Raises:
            InvalidStatusTransitionError: The edge is not in the transition table.
        """
        try:
            validate_transition(from_status, to_status)
        except InvalidStatusTransitionError as e:
            logger.error("Rejected status change for record %s: %s", record_id, e)
            raise

        status = await self._db.execute(
            _UPDATE_STATUS_SQL,
            record_id,
            RecordStatus(from_status).value,
            RecordStatus(to_status).value,
        )
        updated = affected_rows(status) == 1
        if not updated:
            logger.warning(
                "Status change %s -> %s skipped for record %s (status changed concurrently)",
                RecordStatus(from_status).value,
                RecordStatus(to_status).value,
                record_id,
            )
        return updated

    async def transition_many(
        self,
        record_ids: list[int],
        from_statuses: Iterable[RecordStatus | str],
        to_status: RecordStatus | str,
        reset_attempts: bool = False,
        platform: Platform | str | None = None,
    ) -> list[int]:
        """
        Move a set of records to ``to_status`` from any of ``from_statuses``.

        When ``platform`` is given, ids belonging to another platform are
        left untouched.

        Returns:
            Ids that were actually updated.
        """
        if not record_ids:
            return []
        sources = [RecordStatus(s) for s in from_statuses]
        for source in sources:
            if not is_allowed(source, to_status):
                raise InvalidStatusTransitionError(source, to_status)

        rows = await self._db.fetch(
            _TRANSITION_MANY_SQL,
            record_ids,
            RecordStatus(to_status).value,
            [s.value for s in sources],
            reset_attempts,
            _value(platform) if platform is not None else None,
        )
        return [row["id"] for row in rows]

    # -- Enrichment results ------------------------------------------------

    async def upsert_enrichment_result(self, result: EnrichmentResult) -> int:
        """Insert or overwrite the result for (record, kind, model_version)."""
        return await self._db.fetchval(
            _UPSERT_RESULT_SQL,
            result.record_id,
            _value(result.kind),
            result.model_version,
            result.label,
            result.score,
            result.summary,
            list(result.key_points),
            list(result.topics),
            dict(result.reasoning),
            result.latency_ms,
            result.token_usage,
            result.processed_at,
        )

    # -- Dashboard reads ---------------------------------------------------

    async def list_rss_entries(
        self,
        *,
        category: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[asyncpg.Record]:
        """RSS entries newest first, joined with their latest summary."""
        where_clause, params, idx = self._build_filters(
            platform=Platform.RSS, category=category, alias="r"
        )
        sql = _RSS_ENTRIES_SQL.format(
            where_clause=where_clause, limit_idx=idx, offset_idx=idx + 1
        )
        params.extend([limit, offset])
        return await self._db.fetch(sql, *params)

    async def sentiment_daily(self, days: int) -> list[asyncpg.Record]:
        """Per-day sentiment label counts and mean score for tweets."""
        return await self._db.fetch(_SENTIMENT_DAILY_SQL, days)
