"""External content sources: tweet crawler, feed aggregator, research search."""

from agent_pulse.sources.apify import ApifyClient, CrawlerRun, CrawlerRunError
from agent_pulse.sources.miniflux import EntryPage, MinifluxClient
from agent_pulse.sources.research import Paper, ResearchAPIError, ResearchClient

__all__ = [
    "ApifyClient",
    "CrawlerRun",
    "CrawlerRunError",
    "EntryPage",
    "MinifluxClient",
    "Paper",
    "ResearchAPIError",
    "ResearchClient",
]
