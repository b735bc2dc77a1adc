"""
Apify actor client for the tweet crawler.

Starts a run of the tweet-search actor, polls it to completion, and pulls
the run's default dataset. The actor input is sent at the root of the
request body (no ``input`` wrapper), which is what Apify actors expect.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import date
from typing import Any

from agent_pulse.config.settings import Settings, get_settings
from agent_pulse.ingestion.http_client import HTTPClient
from agent_pulse.queues.backoff import RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_ACTOR_ID = "apify/twitter-search-scraper"

SUCCEEDED = "SUCCEEDED"
FAILED_STATUSES = frozenset({"FAILED", "ABORTED", "TIMED-OUT"})
TERMINAL_STATUSES = FAILED_STATUSES | {SUCCEEDED}


class CrawlerRunError(Exception):
    """Raised when an actor run fails, is aborted, or does not finish in time."""

    def __init__(self, message: str, run_id: str | None = None, status: str | None = None):
        super().__init__(message)
        self.run_id = run_id
        self.status = status


@dataclass
class CrawlerRun:
    """State of one actor run as reported by the Apify API."""

    run_id: str
    status: str
    dataset_id: str | None = None
    actor_id: str | None = None
    started_at: str | None = None
    url: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def succeeded(self) -> bool:
        return self.status == SUCCEEDED


def build_search_input(
    keywords: list[str],
    max_items: int,
    sort: str = "Latest",
    language: str | None = None,
    since: date | None = None,
    until: date | None = None,
) -> dict[str, Any]:
    """Actor input for a keyword search. Unset optional fields are omitted."""
    actor_input: dict[str, Any] = {
        "searchTerms": keywords,
        "sort": sort,
        "maxItems": max_items,
        "includeSearchTerms": True,
    }
    if language:
        actor_input["tweetLanguage"] = language
    if since:
        actor_input["sinceDate"] = since.isoformat()
    if until:
        actor_input["untilDate"] = until.isoformat()
    return actor_input


def _run_from_payload(payload: dict[str, Any], base_url: str) -> CrawlerRun:
    data = payload.get("data") or {}
    run_id = data.get("id")
    if not run_id:
        raise CrawlerRunError("Apify response did not include a run id")

    details = data.get("details") or {}
    urls = data.get("urls") or {}
    return CrawlerRun(
        run_id=run_id,
        status=data.get("status", "UNKNOWN"),
        dataset_id=data.get("defaultDatasetId"),
        actor_id=data.get("actId"),
        started_at=details.get("startedAt") or data.get("startedAt"),
        url=urls.get("webUrl") or f"{base_url}/actor-runs/{run_id}",
    )


class ApifyClient:
    """
    Client for the Apify REST API (v2).

    Usage:
        async with ApifyClient() as apify:
            run = await apify.start_run(build_search_input(["cursor"], 100))
            run = await apify.wait_for_run(run.run_id)
            items = await apify.fetch_results(run.dataset_id, limit=100)
    """

    def __init__(
        self,
        token: str | None = None,
        actor_id: str | None = None,
        actor_build: str | None = None,
        base_url: str | None = None,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        self.token = token or settings.apify_token
        self.actor_id = actor_id or settings.apify_actor_id or DEFAULT_ACTOR_ID
        self.actor_build = actor_build or settings.apify_actor_build
        self.base_url = (base_url or settings.apify_base_url).rstrip("/")
        self.poll_interval = settings.apify_poll_interval_seconds
        self.run_timeout = settings.apify_run_timeout_seconds
        self._http = HTTPClient(
            RetryPolicy(
                max_retries=settings.max_http_retries,
                max_delay=settings.max_backoff_seconds,
            ),
            timeout=settings.http_timeout_seconds,
        )

    async def __aenter__(self) -> "ApifyClient":
        if not self.token:
            raise ValueError("APIFY_TOKEN is not configured")
        await self._http.__aenter__()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self._http.__aexit__(exc_type, exc_val, exc_tb)

    @property
    def actor_path(self) -> str:
        """Actor id in URL form (``owner~name``)."""
        return self.actor_id.replace("/", "~")

    async def start_run(self, actor_input: dict[str, Any]) -> CrawlerRun:
        """Start an actor run and return its initial state."""
        params = {"token": self.token}
        if self.actor_build:
            params["build"] = self.actor_build

        response = await self._http.post(
            f"{self.base_url}/acts/{self.actor_path}/runs",
            params=params,
            json_body=actor_input,
        )
        run = _run_from_payload(response.json(), self.base_url)
        logger.info(f"Started Apify run {run.run_id} for actor {self.actor_id} ({run.status})")
        return run

    async def get_run(self, run_id: str) -> CrawlerRun:
        response = await self._http.get(
            f"{self.base_url}/actor-runs/{run_id}",
            params={"token": self.token},
        )
        return _run_from_payload(response.json(), self.base_url)

    async def wait_for_run(
        self,
        run_id: str,
        poll_interval: float | None = None,
        timeout: float | None = None,
    ) -> CrawlerRun:
        """
        Poll a run until it reaches a terminal status.

        Raises:
            CrawlerRunError: The run failed, was aborted, timed out on the
                Apify side, or did not finish within ``timeout`` seconds.
        """
        interval = poll_interval if poll_interval is not None else self.poll_interval
        deadline = time.monotonic() + (timeout if timeout is not None else self.run_timeout)

        while True:
            run = await self.get_run(run_id)
            if run.succeeded:
                logger.info(f"Apify run {run_id} succeeded (dataset {run.dataset_id})")
                return run
            if run.status in FAILED_STATUSES:
                raise CrawlerRunError(
                    f"Apify run {run_id} ended with status {run.status}",
                    run_id=run_id,
                    status=run.status,
                )
            if time.monotonic() >= deadline:
                raise CrawlerRunError(
                    f"Apify run {run_id} still {run.status} after waiting",
                    run_id=run_id,
                    status=run.status,
                )
            logger.debug(f"Apify run {run_id} is {run.status}, polling again in {interval}s")
            await asyncio.sleep(interval)

    async def fetch_results(self, dataset_id: str, limit: int | None = None) -> list[dict[str, Any]]:
        """Read the items of a dataset, cleaned of Apify's hidden fields."""
        params: dict[str, Any] = {
            "token": self.token,
            "clean": "true",
            "format": "json",
        }
        if limit:
            params["limit"] = limit

        response = await self._http.get(
            f"{self.base_url}/datasets/{dataset_id}/items",
            params=params,
        )
        items = response.json()
        if not isinstance(items, list):
            raise CrawlerRunError(f"Unexpected dataset payload for {dataset_id}")
        logger.info(f"Fetched {len(items)} items from dataset {dataset_id}")
        return items
