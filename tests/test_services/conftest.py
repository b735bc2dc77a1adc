"""Fixtures for service-layer tests."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from agent_pulse.ledger.runs import RunRecord, determine_run_status
from agent_pulse.sources.apify import CrawlerRun
from agent_pulse.sources.miniflux import EntryPage

STARTED = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def mock_repository() -> AsyncMock:
    repo = AsyncMock()
    repo.find_existing_keys = AsyncMock(return_value=set())
    repo.insert_raw_item = AsyncMock(return_value=900)
    repo.insert_if_new = AsyncMock(return_value=1)
    repo.transition_many = AsyncMock(return_value=[])
    repo.purge_raw_items = AsyncMock(return_value=0)
    return repo


@pytest.fixture
def mock_run_ledger() -> AsyncMock:
    ledger = AsyncMock()

    async def start_run(pipeline, trigger_source, **kwargs):
        return RunRecord(
            id="run-1",
            pipeline=pipeline,
            trigger_source=getattr(trigger_source, "value", trigger_source),
            keyword_batch=kwargs.get("keyword_batch") or [],
            started_at=STARTED,
        )

    async def finalize_run(run_id, new_count, duplicate_count, errors, metadata=None, status=None):
        return RunRecord(
            id=run_id,
            pipeline="tweets",
            trigger_source="manual",
            started_at=STARTED,
            status=status or determine_run_status(new_count, errors),
            new_count=new_count,
            duplicate_count=duplicate_count,
            error_count=len(errors),
            errors=errors,
            metadata=metadata or {},
        )

    ledger.start_run = AsyncMock(side_effect=start_run)
    ledger.finalize_run = AsyncMock(side_effect=finalize_run)
    ledger.fail_run = AsyncMock()
    return ledger


@pytest.fixture
def mock_crawler() -> AsyncMock:
    crawler = AsyncMock()
    crawler.start_run = AsyncMock(return_value=CrawlerRun(run_id="cr-1", status="RUNNING"))
    crawler.wait_for_run = AsyncMock(
        return_value=CrawlerRun(run_id="cr-1", status="SUCCEEDED", dataset_id="ds-1")
    )
    crawler.fetch_results = AsyncMock(return_value=[])
    return crawler


@pytest.fixture
def mock_aggregator() -> AsyncMock:
    aggregator = AsyncMock()
    aggregator.list_entries = AsyncMock(return_value=EntryPage(total=0, entries=[]))
    return aggregator


@pytest.fixture
def mock_metrics() -> MagicMock:
    return MagicMock()
