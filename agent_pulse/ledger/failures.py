"""
Failure ledger: the latest failure per (record, enrichment kind).

Each failed enrichment attempt upserts one row and bumps retry_count. Rows
are never needed for correctness; they exist for replay tooling and for
reconciliation, which clears failures once a later success exists.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any

import asyncpg
from pydantic import BaseModel, Field

from agent_pulse.ingestion.schemas import EnrichmentKind
from agent_pulse.storage.database import Database, affected_rows

logger = logging.getLogger(__name__)


class FailureStage(str, Enum):
    MODEL_CALL = "model_call"
    PARSE = "parse"
    PERSIST = "persist"
    STUCK = "stuck"


class FailureRecord(BaseModel):
    """One enrichment_failures row."""

    record_id: int
    kind: EnrichmentKind
    model_version: str | None = None
    retry_count: int = 1
    failure_stage: FailureStage
    error_code: str
    last_error: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    first_failed_at: datetime | None = None
    last_attempt_at: datetime | None = None

    model_config = {"use_enum_values": True}


_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS enrichment_failures (
    record_id       BIGINT NOT NULL REFERENCES normalized_records(id) ON DELETE CASCADE,
    kind            TEXT NOT NULL,
    model_version   TEXT,
    retry_count     INTEGER NOT NULL DEFAULT 1,
    failure_stage   TEXT NOT NULL,
    error_code      TEXT NOT NULL,
    last_error      TEXT,
    payload         JSONB NOT NULL DEFAULT '{}',
    first_failed_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    last_attempt_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (record_id, kind)
);

CREATE INDEX IF NOT EXISTS idx_enrichment_failures_last_attempt
    ON enrichment_failures(kind, last_attempt_at);
"""

_UPSERT_FAILURE_SQL = """
INSERT INTO enrichment_failures (
    record_id, kind, model_version, retry_count, failure_stage, error_code,
    last_error, payload
)
VALUES ($1, $2, $3, 1, $4, $5, $6, $7)
ON CONFLICT (record_id, kind) DO UPDATE SET
    retry_count = enrichment_failures.retry_count + 1,
    model_version = EXCLUDED.model_version,
    failure_stage = EXCLUDED.failure_stage,
    error_code = EXCLUDED.error_code,
    last_error = EXCLUDED.last_error,
    payload = EXCLUDED.payload,
    last_attempt_at = NOW()
RETURNING *
"""

_LIST_FAILED_SQL = """
SELECT f.*
FROM enrichment_failures f
JOIN normalized_records r ON r.id = f.record_id
WHERE f.kind = $1
  AND r.status = 'failed'
  AND f.retry_count >= $2
ORDER BY f.last_attempt_at ASC
LIMIT $3
"""

_FIND_RESOLVED_SQL = """
SELECT f.*
FROM enrichment_failures f
WHERE f.last_attempt_at < NOW() - make_interval(days => $1)
  AND EXISTS (
      SELECT 1
      FROM enrichment_results e
      WHERE e.record_id = f.record_id
        AND e.kind = f.kind
        AND e.processed_at > f.last_attempt_at
  )
ORDER BY f.last_attempt_at ASC
LIMIT $2
"""

_DELETE_SQL = """
DELETE FROM enrichment_failures f
USING unnest($1::bigint[], $2::text[]) AS k(record_id, kind)
WHERE f.record_id = k.record_id AND f.kind = k.kind
"""


def _row_to_failure(row: asyncpg.Record | dict) -> FailureRecord:
    return FailureRecord(
        record_id=row["record_id"],
        kind=row["kind"],
        model_version=row["model_version"],
        retry_count=row["retry_count"],
        failure_stage=row["failure_stage"],
        error_code=row["error_code"],
        last_error=row["last_error"],
        payload=dict(row["payload"] or {}),
        first_failed_at=row["first_failed_at"],
        last_attempt_at=row["last_attempt_at"],
    )


def _kind(kind: EnrichmentKind | str) -> str:
    return kind.value if isinstance(kind, EnrichmentKind) else kind


class FailureLedger:
    """Repository for enrichment_failures."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("enrichment_failures table ensured")

    async def record_failure(
        self,
        record_id: int,
        kind: EnrichmentKind | str,
        stage: FailureStage | str,
        error_code: str,
        message: str,
        payload: dict[str, Any] | None = None,
        model_version: str | None = None,
    ) -> FailureRecord:
        """Insert the first failure for (record, kind) or bump retry_count."""
        row = await self._db.fetchrow(
            _UPSERT_FAILURE_SQL,
            record_id,
            _kind(kind),
            model_version,
            FailureStage(stage).value,
            error_code,
            message,
            dict(payload or {}),
        )
        failure = _row_to_failure(row)
        logger.debug(
            "Recorded %s failure for record %d (%s, retry_count=%d)",
            failure.kind,
            record_id,
            error_code,
            failure.retry_count,
        )
        return failure

    async def get(self, record_id: int, kind: EnrichmentKind | str) -> FailureRecord | None:
        row = await self._db.fetchrow(
            "SELECT * FROM enrichment_failures WHERE record_id = $1 AND kind = $2",
            record_id,
            _kind(kind),
        )
        return _row_to_failure(row) if row else None

    async def list_failed(
        self,
        kind: EnrichmentKind | str,
        min_retry_count: int = 1,
        limit: int = 100,
    ) -> list[FailureRecord]:
        """Failures whose record is currently in the failed status."""
        rows = await self._db.fetch(_LIST_FAILED_SQL, _kind(kind), min_retry_count, limit)
        return [_row_to_failure(row) for row in rows]

    async def find_resolved(self, older_than_days: int, limit: int = 1000) -> list[FailureRecord]:
        """
        Failures older than ``older_than_days`` that a later success superseded.

        A failure counts as resolved when an enrichment result of the same
        kind was processed after the failure's last attempt.
        """
        rows = await self._db.fetch(_FIND_RESOLVED_SQL, older_than_days, limit)
        return [_row_to_failure(row) for row in rows]

    async def delete(self, failures: list[FailureRecord]) -> int:
        """Delete the given failures; returns the number of rows removed."""
        if not failures:
            return 0
        status = await self._db.execute(
            _DELETE_SQL,
            [f.record_id for f in failures],
            [_kind(f.kind) for f in failures],
        )
        return affected_rows(status)
