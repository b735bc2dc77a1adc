"""Sentiment and summary enrichment of persisted records."""

from agent_pulse.enrichment.errors import EnrichmentServiceError, ErrorCode
from agent_pulse.enrichment.schemas import EnrichmentOutcome, EnrichmentResult, ModelResponse

__all__ = [
    "EnrichmentOutcome",
    "EnrichmentResult",
    "EnrichmentServiceError",
    "ErrorCode",
    "ModelResponse",
]
