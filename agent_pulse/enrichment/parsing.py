"""Readers for model replies.

Sentiment replies must parse; a bad label or unparseable body is a
terminal error. Summary replies degrade: when no JSON object can be read
the leading slice of the raw text is kept as the summary.
"""

import json
import logging
import re
from typing import Any

from agent_pulse.enrichment.errors import EnrichmentServiceError, ErrorCode
from agent_pulse.enrichment.prompts import SENTIMENT_LABELS
from agent_pulse.enrichment.schemas import EnrichmentOutcome

logger = logging.getLogger(__name__)

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")

LABEL_DEFAULT_SCORES = {
    "positive": 0.7,
    "neutral": 0.0,
    "negative": -0.7,
}

SUMMARY_FALLBACK_CHARS = 500


def extract_json_object(text: str) -> dict[str, Any] | None:
    """
    Read a JSON object from model output.

    Tries the whole text first, then the outermost ``{...}`` span, which
    covers replies wrapped in markdown fences or prose.
    """
    for candidate in (text, *_JSON_OBJECT_RE.findall(text)):
        try:
            value = json.loads(candidate)
        except (json.JSONDecodeError, TypeError):
            continue
        if isinstance(value, dict):
            return value
    return None


def normalize_score(raw: Any, label: str) -> float:
    """Use ``raw`` when it is a number in [-1, 1], else the label's default."""
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return LABEL_DEFAULT_SCORES[label]
    score = float(raw)
    if score != score or score < -1.0 or score > 1.0:  # NaN or out of range
        return LABEL_DEFAULT_SCORES[label]
    return score


def parse_sentiment(text: str, token_usage: int = 0) -> EnrichmentOutcome:
    """
    Parse a ``{label, score, summary}`` reply.

    Raises:
        EnrichmentServiceError: PARSE_ERROR when no object can be read,
            INVALID_LABEL when the label is not one of SENTIMENT_LABELS.
    """
    data = extract_json_object(text)
    if data is None:
        raise EnrichmentServiceError(
            ErrorCode.PARSE_ERROR, "Failed to parse JSON response from sentiment model"
        )

    label = data.get("label")
    if isinstance(label, str):
        label = label.strip().lower()
    if label not in SENTIMENT_LABELS:
        raise EnrichmentServiceError(
            ErrorCode.INVALID_LABEL, f"Invalid sentiment label: {data.get('label')!r}"
        )

    summary = data.get("summary")
    return EnrichmentOutcome(
        label=label,
        score=normalize_score(data.get("score"), label),
        summary=summary if isinstance(summary, str) else None,
        reasoning={"raw_score": data.get("score")},
        token_usage=token_usage,
    )


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if v is not None and str(v).strip()]


def parse_summary(text: str, token_usage: int = 0) -> EnrichmentOutcome:
    """
    Parse a ``{summary, keyPoints, sentiment, topics}`` reply.

    Falls back to the first SUMMARY_FALLBACK_CHARS of the text with a null
    sentiment and empty lists when the reply holds no usable object.

    Raises:
        EnrichmentServiceError: EMPTY_RESPONSE when the text is blank.
    """
    stripped = (text or "").strip()
    if not stripped:
        raise EnrichmentServiceError(
            ErrorCode.EMPTY_RESPONSE, "Summary model returned an empty response"
        )

    data = extract_json_object(stripped)
    summary = data.get("summary") if data else None
    if not isinstance(summary, str) or not summary.strip():
        logger.debug("Summary reply had no JSON summary, using raw text fallback")
        return EnrichmentOutcome(
            summary=stripped[:SUMMARY_FALLBACK_CHARS],
            token_usage=token_usage,
            degraded=True,
        )

    sentiment = data.get("sentiment")
    if isinstance(sentiment, str):
        sentiment = sentiment.strip().lower()
    return EnrichmentOutcome(
        label=sentiment if sentiment in SENTIMENT_LABELS else None,
        summary=summary.strip(),
        key_points=_string_list(data.get("keyPoints")),
        topics=_string_list(data.get("topics")),
        token_usage=token_usage,
    )
