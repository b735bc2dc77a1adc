"""agent-pulse: social and RSS ingestion, normalization, and enrichment pipeline."""

__version__ = "0.1.0"
