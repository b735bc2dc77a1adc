"""Data shapes shared by the enrichment clients, processor, and repository."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from agent_pulse.ingestion.schemas import EnrichmentKind


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ModelResponse:
    """Raw text returned by a model service plus its usage accounting."""

    text: str
    model: str
    token_usage: int = 0
    raw: dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass
class EnrichmentOutcome:
    """Parsed enrichment produced by an Enricher for one record.

    Attributes:
        label: Sentiment label (positive, neutral, negative) or None.
        score: Sentiment score in [-1, 1] or None.
        summary: Short summary or model explanation.
        key_points: Bullet points (summaries only).
        topics: Topic tags (summaries only).
        reasoning: Free-form explanatory payload persisted as JSONB.
        token_usage: Tokens consumed by the model call.
        degraded: True when structured parsing failed and a fallback
            result was produced from the raw text.
    """

    label: str | None = None
    score: float | None = None
    summary: str | None = None
    key_points: list[str] = field(default_factory=list)
    topics: list[str] = field(default_factory=list)
    reasoning: dict[str, Any] = field(default_factory=dict)
    token_usage: int = 0
    degraded: bool = False


@dataclass
class EnrichmentResult:
    """One persisted enrichment row, keyed by (record_id, kind, model_version)."""

    record_id: int
    kind: EnrichmentKind
    model_version: str
    label: str | None = None
    score: float | None = None
    summary: str | None = None
    key_points: list[str] = field(default_factory=list)
    topics: list[str] = field(default_factory=list)
    reasoning: dict[str, Any] = field(default_factory=dict)
    latency_ms: int | None = None
    token_usage: int | None = None
    processed_at: datetime = field(default_factory=_utc_now)

    @classmethod
    def from_outcome(
        cls,
        record_id: int,
        kind: EnrichmentKind,
        model_version: str,
        outcome: EnrichmentOutcome,
        latency_ms: int,
    ) -> "EnrichmentResult":
        """Build the persisted row from a parsed outcome."""
        return cls(
            record_id=record_id,
            kind=kind,
            model_version=model_version,
            label=outcome.label,
            score=outcome.score,
            summary=outcome.summary,
            key_points=list(outcome.key_points),
            topics=list(outcome.topics),
            reasoning=dict(outcome.reasoning),
            latency_ms=latency_ms,
            token_usage=outcome.token_usage,
        )
