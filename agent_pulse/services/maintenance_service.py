"""Operator maintenance: failure reconciliation, replay, and raw-item purge."""

from typing import Any

import structlog

from agent_pulse.enrichment.config import EnrichmentConfig
from agent_pulse.ingestion.schemas import EnrichmentKind, Platform, RecordStatus
from agent_pulse.ingestion.status import PENDING_STATUS
from agent_pulse.ledger.failures import FailureLedger
from agent_pulse.storage.repository import RecordRepository

logger = structlog.get_logger(__name__)

_KIND_PLATFORM = {
    EnrichmentKind.SENTIMENT: Platform.TWITTER,
    EnrichmentKind.SUMMARY: Platform.RSS,
}


class MaintenanceService:
    """
    Housekeeping operations over the record store and failure ledger.

    Nothing here is needed for correctness of the pipelines; these exist
    to keep ledgers small and to give operators a way to retry failures.
    """

    def __init__(
        self,
        repository: RecordRepository,
        failures: FailureLedger,
        config: EnrichmentConfig | None = None,
    ) -> None:
        self._repository = repository
        self._failures = failures
        self._config = config or EnrichmentConfig()

    async def reconcile_failures(
        self,
        older_than_days: int | None = None,
        dry_run: bool = False,
    ) -> dict[str, Any]:
        """
        Delete failure rows that a later success already superseded.

        Args:
            older_than_days: Only failures whose last attempt is older than
                this are considered (defaults to ENRICHMENT_FAILURE_RETENTION_DAYS).
            dry_run: Report what would be deleted without deleting.
        """
        days = older_than_days if older_than_days is not None else self._config.failure_retention_days
        resolved = await self._failures.find_resolved(days)
        deleted = 0
        if resolved and not dry_run:
            deleted = await self._failures.delete(resolved)

        logger.info(
            "Failure reconciliation complete",
            older_than_days=days,
            found=len(resolved),
            deleted=deleted,
            dry_run=dry_run,
        )
        return {"found": len(resolved), "deleted": deleted, "dry_run": dry_run}

    async def replay_failures(
        self,
        kind: EnrichmentKind | str,
        min_retry_count: int = 1,
        limit: int = 100,
        record_ids: list[int] | None = None,
    ) -> dict[str, Any]:
        """
        Move failed records back to their pending status with a fresh attempt budget.

        With ``record_ids`` only those records are replayed; otherwise the
        failure ledger selects failed records of ``kind``. Ids belonging to
        the other platform are skipped, so a summary replay never moves a
        tweet into the summary queue.
        """
        kind = EnrichmentKind(kind)
        if record_ids is None:
            failures = await self._failures.list_failed(
                kind, min_retry_count=min_retry_count, limit=limit
            )
            record_ids = [f.record_id for f in failures]

        pending = PENDING_STATUS[_KIND_PLATFORM[kind]]
        replayed = await self._repository.transition_many(
            record_ids,
            [RecordStatus.FAILED],
            pending,
            reset_attempts=True,
            platform=_KIND_PLATFORM[kind],
        )
        logger.info(
            "Failures replayed",
            kind=kind.value,
            requested=len(record_ids),
            replayed=len(replayed),
        )
        return {
            "kind": kind.value,
            "requested": len(record_ids),
            "replayed": len(replayed),
            "record_ids": replayed,
        }

    async def purge_raw_items(self, older_than_days: int) -> dict[str, Any]:
        """Delete raw payloads past retention; normalized records are kept."""
        deleted = await self._repository.purge_raw_items(older_than_days)
        logger.info("Raw items purged", older_than_days=older_than_days, deleted=deleted)
        return {"deleted": deleted, "older_than_days": older_than_days}
