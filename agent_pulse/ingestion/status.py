"""Record status transitions.

Status moves forward only: pending -> processing -> done | failed. The two
backward edges are explicit: a stuck-entry reset returns an abandoned
``processing`` row to pending, and a manual replay revives a ``failed``
row. Anything outside ALLOWED_TRANSITIONS is rejected.
"""

from agent_pulse.ingestion.schemas import EnrichmentKind, Platform, RecordStatus

S = RecordStatus

# (from, to) -> reason for the edge
ALLOWED_TRANSITIONS: dict[tuple[RecordStatus, RecordStatus], str] = {
    (S.PENDING_SENTIMENT, S.PROCESSING): "claimed",
    (S.PENDING_SUMMARY, S.PROCESSING): "claimed",
    (S.PROCESSING, S.PROCESSED): "enriched",
    (S.PROCESSING, S.SUMMARIZED): "enriched",
    (S.PROCESSING, S.FAILED): "enrichment failed",
    (S.PROCESSING, S.PENDING_SENTIMENT): "stuck reset",
    (S.PROCESSING, S.PENDING_SUMMARY): "stuck reset",
    (S.FAILED, S.PENDING_SENTIMENT): "replay",
    (S.FAILED, S.PENDING_SUMMARY): "replay",
}

# Per-platform lifecycle endpoints
PENDING_STATUS: dict[Platform, RecordStatus] = {
    Platform.TWITTER: S.PENDING_SENTIMENT,
    Platform.RSS: S.PENDING_SUMMARY,
}
DONE_STATUS: dict[Platform, RecordStatus] = {
    Platform.TWITTER: S.PROCESSED,
    Platform.RSS: S.SUMMARIZED,
}
ENRICHMENT_KIND: dict[Platform, EnrichmentKind] = {
    Platform.TWITTER: EnrichmentKind.SENTIMENT,
    Platform.RSS: EnrichmentKind.SUMMARY,
}


class InvalidStatusTransitionError(ValueError):
    """Raised when a status change is not in ALLOWED_TRANSITIONS."""

    def __init__(self, from_status: RecordStatus | str, to_status: RecordStatus | str):
        self.from_status = RecordStatus(from_status)
        self.to_status = RecordStatus(to_status)
        super().__init__(
            f"Invalid status transition: {self.from_status.value} -> {self.to_status.value}"
        )


def is_allowed(from_status: RecordStatus | str, to_status: RecordStatus | str) -> bool:
    """Whether the edge exists in the transition table."""
    return (RecordStatus(from_status), RecordStatus(to_status)) in ALLOWED_TRANSITIONS


def validate_transition(
    from_status: RecordStatus | str,
    to_status: RecordStatus | str,
) -> str:
    """Check a status change against the transition table.

    Args:
        from_status: Current status.
        to_status: Requested status.

    Returns:
        The reason string attached to the edge.

    Raises:
        InvalidStatusTransitionError: If the edge is not allowed.
    """
    key = (RecordStatus(from_status), RecordStatus(to_status))
    if key not in ALLOWED_TRANSITIONS:
        raise InvalidStatusTransitionError(*key)
    return ALLOWED_TRANSITIONS[key]


def sources_for(to_status: RecordStatus | str) -> list[RecordStatus]:
    """All statuses from which ``to_status`` is reachable in one step."""
    target = RecordStatus(to_status)
    return [src for (src, dst) in ALLOWED_TRANSITIONS if dst == target]
