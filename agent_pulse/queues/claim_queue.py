"""
Database-backed claim queue for the enrichment stage.

There is no broker: the pending status on normalized_records *is* the
queue. A claim is one UPDATE over a ``FOR UPDATE SKIP LOCKED`` subquery, so
two overlapping invocations never receive the same row. A claimed row sits
in ``processing`` until the processor moves it to done or failed. A row
whose claimer died is returned to pending by reset_stuck() while it has
claims left, and moved to failed by expire_stuck() once it has used them
all, so no row can wait in processing or pending forever.
"""

import logging
from dataclasses import dataclass

from agent_pulse.ingestion.schemas import (
    EnrichmentKind,
    NormalizedRecord,
    Platform,
    RecordStatus,
)
from agent_pulse.ingestion.status import (
    DONE_STATUS,
    ENRICHMENT_KIND,
    PENDING_STATUS,
    validate_transition,
)
from agent_pulse.storage.database import Database
from agent_pulse.storage.repository import _record_to_normalized

logger = logging.getLogger(__name__)

MIN_BATCH_SIZE = 1
MAX_BATCH_SIZE = 200

_CLAIM_SQL = """
UPDATE normalized_records
SET status = 'processing',
    status_changed_at = NOW(),
    attempt_count = attempt_count + 1
WHERE id IN (
    SELECT id
    FROM normalized_records
    WHERE platform = $1
      AND status = $2
      AND attempt_count < $3
    ORDER BY collected_at ASC, id ASC
    LIMIT $4
    FOR UPDATE SKIP LOCKED
)
RETURNING *
"""

_RESET_STUCK_SQL = """
UPDATE normalized_records
SET status = $2,
    status_changed_at = NOW()
WHERE platform = $1
  AND status = 'processing'
  AND status_changed_at < NOW() - make_interval(mins => $3)
  AND ($4::int IS NULL OR attempt_count < $4)
RETURNING id
"""

_EXPIRE_STUCK_SQL = """
UPDATE normalized_records
SET status = 'failed',
    status_changed_at = NOW()
WHERE platform = $1
  AND status = 'processing'
  AND status_changed_at < NOW() - make_interval(mins => $2)
  AND attempt_count >= $3
RETURNING id, attempt_count
"""

_QUEUE_DEPTH_SQL = """
SELECT COUNT(*)
FROM normalized_records
WHERE platform = $1 AND status = $2
"""

_QUEUE_STATS_SQL = """
SELECT
    COUNT(*) FILTER (WHERE status = $2) AS pending,
    COUNT(*) FILTER (
        WHERE status = 'processing'
          AND status_changed_at < NOW() - make_interval(mins => $3)
    ) AS stuck,
    COUNT(*) FILTER (
        WHERE collected_at >= NOW() - make_interval(hours => $4)
    ) AS recent_total,
    COUNT(*) FILTER (
        WHERE status = 'failed'
          AND collected_at >= NOW() - make_interval(hours => $4)
    ) AS recent_failed
FROM normalized_records
WHERE platform = $1
"""


@dataclass(frozen=True)
class QueueSpec:
    """Binds one platform to its lifecycle statuses and enrichment kind."""

    platform: Platform
    pending_status: RecordStatus
    done_status: RecordStatus
    kind: EnrichmentKind

    @classmethod
    def for_platform(cls, platform: Platform) -> "QueueSpec":
        return cls(
            platform=platform,
            pending_status=PENDING_STATUS[platform],
            done_status=DONE_STATUS[platform],
            kind=ENRICHMENT_KIND[platform],
        )


@dataclass(frozen=True)
class QueueStats:
    """Point-in-time counts used by the health endpoint."""

    pending: int = 0
    stuck: int = 0
    recent_total: int = 0
    recent_failed: int = 0
    window_hours: int = 24

    @property
    def failure_rate(self) -> float:
        """Percentage of records collected in the window that ended in failed."""
        if not self.recent_total:
            return 0.0
        return self.recent_failed / self.recent_total * 100


SENTIMENT_QUEUE = QueueSpec.for_platform(Platform.TWITTER)
SUMMARY_QUEUE = QueueSpec.for_platform(Platform.RSS)


def clamp_batch_size(batch_size: int) -> int:
    """Clamp a requested batch size into [MIN_BATCH_SIZE, MAX_BATCH_SIZE]."""
    return max(MIN_BATCH_SIZE, min(MAX_BATCH_SIZE, batch_size))


class ClaimQueue:
    """
    Claim, reset, and measure pending records for one enrichment kind.

    Usage:
        queue = ClaimQueue(db, SENTIMENT_QUEUE)
        await queue.expire_stuck(timeout_minutes=30, max_attempts=5)
        await queue.reset_stuck(timeout_minutes=30, max_attempts=5)
        records = await queue.claim(batch_size=50, max_attempts=5)
    """

    def __init__(self, database: Database, spec: QueueSpec) -> None:
        self._db = database
        self.spec = spec
        # Every edge this queue writes must exist in the transition table
        validate_transition(spec.pending_status, RecordStatus.PROCESSING)
        validate_transition(RecordStatus.PROCESSING, spec.pending_status)
        validate_transition(RecordStatus.PROCESSING, RecordStatus.FAILED)

    async def claim(self, batch_size: int, max_attempts: int) -> list[NormalizedRecord]:
        """
        Atomically move up to ``batch_size`` pending records to processing.

        Records are taken oldest-collected first. Rows that have already
        been claimed ``max_attempts`` times are never claimed again.

        Returns:
            Claimed records, with status and attempt_count as updated.
        """
        size = clamp_batch_size(batch_size)
        if size != batch_size:
            logger.debug("Claim batch size %d clamped to %d", batch_size, size)

        rows = await self._db.fetch(
            _CLAIM_SQL,
            self.spec.platform.value,
            self.spec.pending_status.value,
            max_attempts,
            size,
        )
        records = [_record_to_normalized(row) for row in rows]
        # UPDATE ... RETURNING does not preserve the subquery order
        records.sort(key=lambda r: (r.collected_at, r.id or 0))
        if records:
            logger.info(
                "Claimed %d %s records", len(records), self.spec.kind.value
            )
        return records

    async def reset_stuck(
        self,
        timeout_minutes: int = 30,
        max_attempts: int | None = None,
    ) -> list[int]:
        """
        Return records stuck in processing longer than the timeout to pending.

        With ``max_attempts``, rows that have used every claim stay in
        processing for expire_stuck() instead of going back to a pending
        status the claim would never pick up again.

        Returns:
            Ids of the reset records.
        """
        rows = await self._db.fetch(
            _RESET_STUCK_SQL,
            self.spec.platform.value,
            self.spec.pending_status.value,
            timeout_minutes,
            max_attempts,
        )
        ids = [row["id"] for row in rows]
        if ids:
            logger.warning(
                "Reset %d stuck %s records older than %d minutes",
                len(ids),
                self.spec.kind.value,
                timeout_minutes,
            )
        return ids

    async def expire_stuck(self, timeout_minutes: int, max_attempts: int) -> list[tuple[int, int]]:
        """
        Fail records stuck in processing after their last permitted claim.

        Returns:
            (id, attempt_count) of each record moved to failed.
        """
        rows = await self._db.fetch(
            _EXPIRE_STUCK_SQL,
            self.spec.platform.value,
            timeout_minutes,
            max_attempts,
        )
        expired = [(row["id"], row["attempt_count"]) for row in rows]
        if expired:
            logger.warning(
                "Failed %d stuck %s records with no claims left",
                len(expired),
                self.spec.kind.value,
            )
        return expired

    async def queue_depth(self) -> int:
        """Number of records waiting in the pending status."""
        depth = await self._db.fetchval(
            _QUEUE_DEPTH_SQL,
            self.spec.platform.value,
            self.spec.pending_status.value,
        )
        return depth or 0

    async def queue_stats(self, stuck_timeout_minutes: int, window_hours: int = 24) -> QueueStats:
        """
        Backlog, stuck claims, and recent failures for this queue in one pass.

        A claim counts as stuck once it has sat in processing longer than
        ``stuck_timeout_minutes``. The failure window covers records
        collected in the last ``window_hours``.
        """
        row = await self._db.fetchrow(
            _QUEUE_STATS_SQL,
            self.spec.platform.value,
            self.spec.pending_status.value,
            stuck_timeout_minutes,
            window_hours,
        )
        if row is None:
            return QueueStats(window_hours=window_hours)
        return QueueStats(
            pending=row["pending"],
            stuck=row["stuck"],
            recent_total=row["recent_total"],
            recent_failed=row["recent_failed"],
            window_hours=window_hours,
        )
