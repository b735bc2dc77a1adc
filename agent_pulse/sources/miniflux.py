"""
Miniflux feed aggregator client.

Only the entry listing endpoint is used. Entries come back as raw dicts;
rss_normalizer turns them into NormalizedRecord instances.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from agent_pulse.config.settings import Settings, get_settings
from agent_pulse.ingestion.http_client import HTTPClient
from agent_pulse.queues.backoff import RetryPolicy

logger = logging.getLogger(__name__)

EntryStatus = Literal["unread", "read", "removed"]


@dataclass
class EntryPage:
    """One page of GET /v1/entries."""

    total: int = 0
    entries: list[dict[str, Any]] = field(default_factory=list)


class MinifluxClient:
    """
    Client for the Miniflux REST API.

    Usage:
        async with MinifluxClient() as miniflux:
            page = await miniflux.list_entries(limit=100, status="unread")
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        self.base_url = (base_url or settings.miniflux_base_url).rstrip("/")
        self.api_key = api_key or settings.miniflux_api_key
        # 1s, 2s, 4s between attempts
        self._http = HTTPClient(
            RetryPolicy(
                max_retries=settings.max_http_retries,
                base_delay=1.0,
                multiplier=2.0,
                max_delay=settings.max_backoff_seconds,
            ),
            timeout=settings.http_timeout_seconds,
        )

    async def __aenter__(self) -> "MinifluxClient":
        if not self.api_key:
            raise ValueError("MINIFLUX_API_KEY is not configured")
        await self._http.__aenter__()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self._http.__aexit__(exc_type, exc_val, exc_tb)

    async def list_entries(
        self,
        limit: int = 100,
        offset: int = 0,
        status: EntryStatus | None = None,
        published_after: datetime | None = None,
        order: str = "published_at",
        direction: Literal["asc", "desc"] = "desc",
    ) -> EntryPage:
        """
        List entries across all feeds.

        Args:
            limit: Page size.
            offset: Page offset.
            status: Entry read status filter; None for any.
            published_after: Only entries published after this instant.
            order: Sort column.
            direction: Sort direction.
        """
        params: dict[str, Any] = {
            "limit": limit,
            "order": order,
            "direction": direction,
        }
        if offset:
            params["offset"] = offset
        if status:
            params["status"] = status
        if published_after is not None:
            params["published_after"] = int(published_after.timestamp())

        response = await self._http.get(
            f"{self.base_url}/v1/entries",
            params=params,
            headers={"X-Auth-Token": self.api_key},
        )
        payload = response.json()
        entries = payload.get("entries") or []
        page = EntryPage(total=int(payload.get("total") or 0), entries=entries)
        logger.info(f"Fetched {len(page.entries)} of {page.total} Miniflux entries")
        return page
