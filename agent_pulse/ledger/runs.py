"""
Run ledger: one row per collection invocation.

A row is written with status ``running`` when an invocation starts and
finalized when it ends. An invocation that dies before finalizing leaves a
``running`` row behind, which is itself the signal that it never finished.
"""

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import asyncpg
from pydantic import BaseModel, Field

from agent_pulse.storage.database import Database

logger = logging.getLogger(__name__)


class RunStatus(str, Enum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    PARTIAL_SUCCESS = "partial_success"
    FAILED = "failed"


class TriggerSource(str, Enum):
    CRON = "cron"
    MANUAL = "manual"
    CLI = "cli"


def determine_run_status(new_count: int, errors: list[Any]) -> RunStatus:
    """
    Derive a run's final status from its outcome.

    No errors is a success regardless of how many records were new. With
    errors, the run is a partial success if it still inserted something,
    otherwise a failure.
    """
    if not errors:
        return RunStatus.SUCCEEDED
    if new_count > 0:
        return RunStatus.PARTIAL_SUCCESS
    return RunStatus.FAILED


class RunRecord(BaseModel):
    """One pipeline_runs row."""

    id: str
    pipeline: str
    trigger_source: str
    keyword_batch: list[str] = Field(default_factory=list)
    window_start: datetime | None = None
    window_end: datetime | None = None
    started_at: datetime
    finished_at: datetime | None = None
    status: RunStatus = RunStatus.RUNNING
    new_count: int = 0
    duplicate_count: int = 0
    error_count: int = 0
    errors: list[dict[str, Any]] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = {"use_enum_values": True}


_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS pipeline_runs (
    id              TEXT PRIMARY KEY,
    pipeline        TEXT NOT NULL,
    trigger_source  TEXT NOT NULL,
    keyword_batch   TEXT[] NOT NULL DEFAULT '{}',
    window_start    TIMESTAMPTZ,
    window_end      TIMESTAMPTZ,
    started_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    finished_at     TIMESTAMPTZ,
    status          TEXT NOT NULL DEFAULT 'running',
    new_count       INTEGER NOT NULL DEFAULT 0,
    duplicate_count INTEGER NOT NULL DEFAULT 0,
    error_count     INTEGER NOT NULL DEFAULT 0,
    errors          JSONB NOT NULL DEFAULT '[]',
    metadata        JSONB NOT NULL DEFAULT '{}'
);

CREATE INDEX IF NOT EXISTS idx_pipeline_runs_pipeline_started
    ON pipeline_runs(pipeline, started_at DESC);
"""

_INSERT_RUN_SQL = """
INSERT INTO pipeline_runs (
    id, pipeline, trigger_source, keyword_batch, window_start, window_end,
    started_at, status, metadata
)
VALUES ($1, $2, $3, $4, $5, $6, $7, 'running', $8)
RETURNING *
"""

_FINALIZE_RUN_SQL = """
UPDATE pipeline_runs
SET status = $2,
    finished_at = NOW(),
    new_count = $3,
    duplicate_count = $4,
    error_count = $5,
    errors = $6,
    metadata = metadata || $7::jsonb
WHERE id = $1
RETURNING *
"""


def _row_to_run(row: asyncpg.Record | dict) -> RunRecord:
    return RunRecord(
        id=row["id"],
        pipeline=row["pipeline"],
        trigger_source=row["trigger_source"],
        keyword_batch=list(row["keyword_batch"] or []),
        window_start=row["window_start"],
        window_end=row["window_end"],
        started_at=row["started_at"],
        finished_at=row["finished_at"],
        status=row["status"],
        new_count=row["new_count"],
        duplicate_count=row["duplicate_count"],
        error_count=row["error_count"],
        errors=list(row["errors"] or []),
        metadata=dict(row["metadata"] or {}),
    )


class RunLedger:
    """Repository for pipeline_runs."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("pipeline_runs table ensured")

    async def start_run(
        self,
        pipeline: str,
        trigger_source: TriggerSource | str,
        keyword_batch: list[str] | None = None,
        window_start: datetime | None = None,
        window_end: datetime | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> RunRecord:
        """Insert a ``running`` row and return it."""
        run_id = str(uuid.uuid4())
        source = trigger_source.value if isinstance(trigger_source, TriggerSource) else trigger_source
        row = await self._db.fetchrow(
            _INSERT_RUN_SQL,
            run_id,
            pipeline,
            source,
            list(keyword_batch or []),
            window_start,
            window_end,
            datetime.now(timezone.utc),
            dict(metadata or {}),
        )
        logger.info(f"Started {pipeline} run {run_id} (trigger={source})")
        return _row_to_run(row)

    async def finalize_run(
        self,
        run_id: str,
        new_count: int,
        duplicate_count: int,
        errors: list[dict[str, Any]],
        metadata: dict[str, Any] | None = None,
        status: RunStatus | None = None,
    ) -> RunRecord:
        """
        Close a run with its counts.

        The status is derived with determine_run_status() unless given.
        ``metadata`` is merged into the row's existing metadata.
        """
        final_status = status or determine_run_status(new_count, errors)
        row = await self._db.fetchrow(
            _FINALIZE_RUN_SQL,
            run_id,
            final_status.value,
            new_count,
            duplicate_count,
            len(errors),
            list(errors),
            dict(metadata or {}),
        )
        if row is None:
            raise LookupError(f"Run {run_id} not found")
        logger.info(
            f"Finalized run {run_id}: {final_status.value} "
            f"(new={new_count}, duplicates={duplicate_count}, errors={len(errors)})"
        )
        return _row_to_run(row)

    async def fail_run(
        self,
        run_id: str,
        error: BaseException | str,
        new_count: int = 0,
        duplicate_count: int = 0,
        errors: list[dict[str, Any]] | None = None,
    ) -> RunRecord:
        """Finalize a run as failed, recording the fatal error in metadata."""
        fatal = {
            "type": type(error).__name__ if isinstance(error, BaseException) else "error",
            "message": str(error),
        }
        all_errors = list(errors or [])
        all_errors.append({**fatal, "platform_id": None})
        return await self.finalize_run(
            run_id,
            new_count=new_count,
            duplicate_count=duplicate_count,
            errors=all_errors,
            metadata={"fatal_error": fatal},
            status=RunStatus.FAILED,
        )

    async def get_run(self, run_id: str) -> RunRecord | None:
        row = await self._db.fetchrow("SELECT * FROM pipeline_runs WHERE id = $1", run_id)
        return _row_to_run(row) if row else None

    async def list_recent(self, pipeline: str | None = None, limit: int = 20) -> list[RunRecord]:
        """Most recent runs, optionally for one pipeline."""
        if pipeline:
            rows = await self._db.fetch(
                "SELECT * FROM pipeline_runs WHERE pipeline = $1 "
                "ORDER BY started_at DESC LIMIT $2",
                pipeline,
                limit,
            )
        else:
            rows = await self._db.fetch(
                "SELECT * FROM pipeline_runs ORDER BY started_at DESC LIMIT $1",
                limit,
            )
        return [_row_to_run(row) for row in rows]
