"""
Natural-key deduplication gate.

Checks a whole candidate batch against keys already in the store before
anything is inserted. Repeats inside the batch are collapsed by the
caller, which only claims a key once its item has normalized. The gate
is not transactional with the subsequent insert: two overlapping
invocations can both pass the same key, in which case the partial unique
indexes on normalized_records reject the second insert.
"""

import logging
from collections import defaultdict
from collections.abc import Iterable
from typing import Protocol

from agent_pulse.ingestion.schemas import NaturalKey, Platform

logger = logging.getLogger(__name__)


class KeyLookup(Protocol):
    """Subset of RecordRepository the gate depends on."""

    async def find_existing_keys(
        self,
        platform: Platform | str,
        platform_ids: Iterable[str],
    ) -> set[NaturalKey]: ...


class DeduplicationGate:
    """
    Filters candidates whose natural key is already stored.

    Usage:
        gate = DeduplicationGate(repository)
        existing = await gate.find_existing(keys)
        for key, item in batch:
            if key in existing:
                continue
            ...
    """

    def __init__(self, lookup: KeyLookup) -> None:
        self._lookup = lookup

    async def find_existing(self, keys: Iterable[NaturalKey]) -> set[NaturalKey]:
        """
        Return the subset of ``keys`` already present in the store.

        Issues one query per platform; an empty input does not query.
        """
        by_platform: dict[str, set[str]] = defaultdict(set)
        wanted: set[NaturalKey] = set()
        for key in keys:
            by_platform[key.platform].add(key.platform_id)
            wanted.add(key)

        if not wanted:
            return set()

        existing: set[NaturalKey] = set()
        for platform, ids in by_platform.items():
            stored = await self._lookup.find_existing_keys(platform, sorted(ids))
            existing.update(k for k in stored if k in wanted)

        if existing:
            logger.debug("Dedup: %d of %d keys already stored", len(existing), len(wanted))
        return existing
