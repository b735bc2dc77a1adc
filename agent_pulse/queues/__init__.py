"""Retry policy and the enrichment claim queue."""

from agent_pulse.queues.backoff import (
    ExponentialBackoff,
    OutcomeKind,
    RetryOutcome,
    RetryPolicy,
)

__all__ = [
    "ExponentialBackoff",
    "OutcomeKind",
    "RetryOutcome",
    "RetryPolicy",
]
