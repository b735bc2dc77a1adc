"""Ingestion: canonical schemas, status transitions, normalizers, deduplication."""

from agent_pulse.ingestion.schemas import (
    ContentCategory,
    EngagementMetrics,
    EnrichmentKind,
    NaturalKey,
    NormalizationContext,
    NormalizedRecord,
    Platform,
    RawItem,
    RecordStatus,
)

__all__ = [
    "ContentCategory",
    "EngagementMetrics",
    "EnrichmentKind",
    "NaturalKey",
    "NormalizationContext",
    "NormalizedRecord",
    "Platform",
    "RawItem",
    "RecordStatus",
]
