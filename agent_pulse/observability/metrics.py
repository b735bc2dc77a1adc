"""
Prometheus metrics for the ingestion and enrichment pipeline.

Defines and exposes metrics for:
- Records ingested, deduplicated, and rejected during normalization
- Enrichment outcomes and model-call latency
- Claim queue depth and stuck-entry resets and expiries
- Run ledger outcomes

Batch invocations are short-lived, so the CLI only starts the HTTP
exporter when asked (``--metrics``); the API process exposes the same
registry.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from agent_pulse.config.settings import get_settings
from agent_pulse.ingestion.schemas import Platform

logger = logging.getLogger(__name__)

# Buckets for latency histograms (in seconds). Model calls run long.
LATENCY_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0)


def _label(value: Platform | str) -> str:
    return value.value if isinstance(value, Platform) else str(value)


class MetricsCollector:
    """
    Prometheus metrics collector for the agent-pulse pipeline.

    Usage:
        metrics = get_metrics()
        metrics.record_ingested("twitter", new=12, duplicates=3)
        metrics.record_enrichment("sentiment", "processed")
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        # Collection
        self.records_ingested = Counter(
            "agent_pulse_records_ingested_total",
            "Normalized records inserted",
            ["platform"],
        )

        self.records_duplicate = Counter(
            "agent_pulse_records_duplicate_total",
            "Candidates skipped by the deduplication gate",
            ["platform"],
        )

        self.normalization_errors = Counter(
            "agent_pulse_normalization_errors_total",
            "Items skipped because normalization failed",
            ["platform", "error_type"],
        )

        self.fetch_latency = Histogram(
            "agent_pulse_fetch_latency_seconds",
            "Time to fetch a batch from an external source",
            ["platform"],
            buckets=LATENCY_BUCKETS,
        )

        # Run ledger
        self.runs_finished = Counter(
            "agent_pulse_runs_finished_total",
            "Pipeline runs by final status",
            ["pipeline", "status"],
        )

        # Enrichment
        self.enrichment_results = Counter(
            "agent_pulse_enrichment_results_total",
            "Enrichment outcomes per record",
            ["kind", "outcome"],  # outcome: processed, failed, skipped
        )

        self.enrichment_errors = Counter(
            "agent_pulse_enrichment_errors_total",
            "Enrichment errors by error code",
            ["kind", "error_code"],
        )

        self.model_latency = Histogram(
            "agent_pulse_model_latency_seconds",
            "Latency of external model calls",
            ["kind"],
            buckets=LATENCY_BUCKETS,
        )

        self.model_tokens = Counter(
            "agent_pulse_model_tokens_total",
            "Tokens consumed by model calls",
            ["kind"],
        )

        # Claim queue
        self.queue_depth = Gauge(
            "agent_pulse_queue_depth",
            "Records waiting for enrichment",
            ["kind"],
        )

        self.stuck_resets = Counter(
            "agent_pulse_stuck_resets_total",
            "Records returned to pending after a stale claim",
            ["kind"],
        )

        self.stuck_expired = Counter(
            "agent_pulse_stuck_expired_total",
            "Records failed after a stale claim with no claims left",
            ["kind"],
        )

        logger.info("Prometheus metrics initialized")

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to expose metrics on (default from settings)
        """
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=REGISTRY)
        logger.info(f"Prometheus metrics server started on port {port}")

    # Convenience methods

    def record_ingested(
        self,
        platform: Platform | str,
        new: int = 0,
        duplicates: int = 0,
        latency: float | None = None,
    ) -> None:
        """
        Record the outcome of one collection batch.

        Args:
            platform: Source platform
            new: Records inserted
            duplicates: Candidates skipped as duplicates
            latency: Optional fetch latency in seconds
        """
        platform_str = _label(platform)
        if new:
            self.records_ingested.labels(platform=platform_str).inc(new)
        if duplicates:
            self.records_duplicate.labels(platform=platform_str).inc(duplicates)
        if latency is not None:
            self.fetch_latency.labels(platform=platform_str).observe(latency)

    def record_normalization_error(self, platform: Platform | str, error_type: str) -> None:
        """Record an item dropped during normalization."""
        self.normalization_errors.labels(
            platform=_label(platform),
            error_type=error_type,
        ).inc()

    def record_run(self, pipeline: str, status: str) -> None:
        """Record a finalized run."""
        self.runs_finished.labels(pipeline=pipeline, status=status).inc()

    def record_enrichment(
        self,
        kind: str,
        outcome: str,
        latency: float | None = None,
        tokens: int | None = None,
    ) -> None:
        """
        Record one enrichment outcome.

        Args:
            kind: Enrichment kind (sentiment, summary)
            outcome: processed, failed, or skipped
            latency: Model call latency in seconds
            tokens: Tokens consumed
        """
        self.enrichment_results.labels(kind=kind, outcome=outcome).inc()
        if latency is not None:
            self.model_latency.labels(kind=kind).observe(latency)
        if tokens:
            self.model_tokens.labels(kind=kind).inc(tokens)

    def record_enrichment_error(self, kind: str, error_code: str) -> None:
        """Record an enrichment error by code."""
        self.enrichment_errors.labels(kind=kind, error_code=error_code).inc()

    def set_queue_depth(self, kind: str, depth: int) -> None:
        """Set pending queue depth for an enrichment kind."""
        self.queue_depth.labels(kind=kind).set(depth)

    def record_stuck_resets(self, kind: str, count: int) -> None:
        """Record records reset from a stale claim."""
        if count:
            self.stuck_resets.labels(kind=kind).inc(count)

    def record_stuck_expired(self, kind: str, count: int) -> None:
        """Record records failed from a stale claim."""
        if count:
            self.stuck_expired.labels(kind=kind).inc(count)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
