"""
NASA ADS client for the research feed.

Searches computer-science arXiv preprints about coding agents and maps
ADS documents to Paper objects for the dashboard.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from agent_pulse.config.settings import Settings, get_settings
from agent_pulse.ingestion.http_client import HTTPClient
from agent_pulse.queues.backoff import RetryPolicy

logger = logging.getLogger(__name__)

CODING_AGENT_QUERY = " AND ".join(
    [
        "arXiv_class:cs*",
        '(title:"coding agent" OR title:"code generation" OR title:"AI assistant" '
        'OR title:"programming assistant"',
        'OR abstract:"coding agent" OR abstract:"code generation" '
        'OR abstract:"AI coding" OR abstract:"programming assistant")',
        "property:refereed:no",
    ]
)

FIELD_LIST = "bibcode,title,author,pubdate,arxiv_class,abstract,citation_count,links_data"

MAX_LISTED_AUTHORS = 4
ABSTRACT_MAX_LENGTH = 500

_ARXIV_ID_RE = re.compile(r"(\d{4}\.\d{4,5})")
# ADS pubdates look like "2024-05-00" when only the month is known
_PUBDATE_RE = re.compile(r"^(\d{4})-(\d{2})(?:-(\d{2}))?")


class Paper(BaseModel):
    """A research paper as shown in the dashboard feed."""

    id: str
    title: str
    authors: str
    published: datetime
    arxiv_class: str = Field(serialization_alias="arxivClass")
    abstract: str
    citations: int = 0
    pdf: str = ""


def format_authors(authors: list[str] | None) -> str:
    """Comma-joined author list, cut to four names plus "et al."."""
    authors = authors or []
    if len(authors) > MAX_LISTED_AUTHORS:
        return f"{', '.join(authors[:MAX_LISTED_AUTHORS])} et al."
    return ", ".join(authors) or "Unknown authors"


def truncate_abstract(abstract: str, max_length: int = ABSTRACT_MAX_LENGTH) -> str:
    """
    Shorten an abstract for display.

    Cuts at the last sentence end inside the limit when it falls past 70%
    of the limit; otherwise cuts at the last word boundary and appends
    "...".
    """
    if len(abstract) <= max_length:
        return abstract

    truncated = abstract[:max_length]
    last_sentence = truncated.rfind(".")
    if last_sentence > max_length * 0.7:
        return truncated[: last_sentence + 1]

    last_space = truncated.rfind(" ")
    if last_space > 0:
        return f"{truncated[:last_space]}..."
    return f"{truncated}..."


def pdf_link(doc: dict[str, Any]) -> str:
    """arXiv link from links_data, else one built from the bibcode."""
    for link in doc.get("links_data") or []:
        # links_data entries arrive as JSON-encoded strings or dicts
        if isinstance(link, str):
            if "arxiv.org" in link:
                match = re.search(r'"url"\s*:\s*"([^"]+)"', link)
                if match:
                    return match.group(1)
            continue
        title = (link.get("title") or "").lower()
        url = link.get("url") or ""
        if "arxiv" in title or "arxiv.org" in url:
            return url

    match = _ARXIV_ID_RE.search(doc.get("bibcode") or "")
    if match:
        return f"https://arxiv.org/pdf/{match.group(1)}.pdf"
    return ""


def parse_pubdate(value: str | None) -> datetime:
    """Parse an ADS pubdate; a zero day or month means unknown and becomes 1."""
    match = _PUBDATE_RE.match(value or "")
    if not match:
        return datetime.now(timezone.utc)
    year = int(match.group(1))
    month = int(match.group(2)) or 1
    day = int(match.group(3) or 0) or 1
    try:
        return datetime(year, month, day, tzinfo=timezone.utc)
    except ValueError:
        return datetime.now(timezone.utc)


def doc_to_paper(doc: dict[str, Any]) -> Paper:
    """Map a raw ADS document to a Paper."""
    titles = doc.get("title") or []
    classes = doc.get("arxiv_class") or []
    abstracts = doc.get("abstract")
    if isinstance(abstracts, list):
        abstract = abstracts[0] if abstracts else ""
    else:
        abstract = abstracts or ""

    return Paper(
        id=doc.get("bibcode", ""),
        title=titles[0] if titles else "Untitled",
        authors=format_authors(doc.get("author")),
        published=parse_pubdate(doc.get("pubdate")),
        arxiv_class=classes[0] if classes else "cs.unknown",
        abstract=truncate_abstract(abstract or "No abstract available"),
        citations=doc.get("citation_count") or 0,
        pdf=pdf_link(doc),
    )


class ResearchAPIError(Exception):
    """Raised when ADS returns an error or an unexpected payload."""


class ResearchClient:
    """
    Client for the ADS search API.

    Usage:
        async with ResearchClient() as ads:
            papers = await ads.search_coding_agents(rows=25)
    """

    def __init__(
        self,
        token: str | None = None,
        base_url: str | None = None,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        self.token = token or settings.ads_api_token
        self.base_url = (base_url or settings.ads_base_url).rstrip("/")
        self._http = HTTPClient(
            RetryPolicy(max_retries=1, max_delay=settings.max_backoff_seconds),
            timeout=10.0,
        )

    async def __aenter__(self) -> "ResearchClient":
        if not self.token:
            raise ValueError("ADS_API_TOKEN is not configured")
        await self._http.__aenter__()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self._http.__aexit__(exc_type, exc_val, exc_tb)

    async def search_coding_agents(self, rows: int = 25) -> list[Paper]:
        """Newest coding-agent preprints, newest first."""
        response = await self._http.get(
            f"{self.base_url}/search/query",
            params={
                "q": CODING_AGENT_QUERY,
                "rows": rows,
                "sort": "date desc",
                "fl": FIELD_LIST,
            },
            headers={
                "Authorization": f"Bearer {self.token}",
                "Accept": "application/json",
            },
        )
        payload = response.json()
        docs = (payload.get("response") or {}).get("docs")
        if docs is None:
            raise ResearchAPIError("Invalid response format from ADS API")

        papers = [doc_to_paper(doc) for doc in docs]
        logger.info(f"Fetched {len(papers)} papers from ADS")
        return papers
