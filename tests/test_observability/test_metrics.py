"""Tests for the Prometheus metrics collector."""

from prometheus_client import REGISTRY

from agent_pulse.ingestion.schemas import Platform
from agent_pulse.observability.metrics import get_metrics


def _sample(name: str, labels: dict[str, str]) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestMetricsCollector:
    """Tests for the convenience recorders."""

    def test_singleton(self):
        assert get_metrics() is get_metrics()

    def test_record_ingested(self):
        metrics = get_metrics()
        labels = {"platform": "rss"}
        new_before = _sample("agent_pulse_records_ingested_total", labels)
        dup_before = _sample("agent_pulse_records_duplicate_total", labels)

        metrics.record_ingested(Platform.RSS, new=3, duplicates=2, latency=0.4)

        assert _sample("agent_pulse_records_ingested_total", labels) == new_before + 3
        assert _sample("agent_pulse_records_duplicate_total", labels) == dup_before + 2

    def test_record_enrichment_with_tokens(self):
        metrics = get_metrics()
        before = _sample("agent_pulse_model_tokens_total", {"kind": "summary"})

        metrics.record_enrichment("summary", "processed", latency=1.5, tokens=120)

        assert _sample("agent_pulse_model_tokens_total", {"kind": "summary"}) == before + 120

    def test_queue_depth_gauge(self):
        get_metrics().set_queue_depth("sentiment", 42)
        assert _sample("agent_pulse_queue_depth", {"kind": "sentiment"}) == 42

    def test_zero_stuck_resets_not_counted(self):
        metrics = get_metrics()
        labels = {"kind": "summary"}
        before = _sample("agent_pulse_stuck_resets_total", labels)

        metrics.record_stuck_resets("summary", 0)
        metrics.record_stuck_resets("summary", 2)

        assert _sample("agent_pulse_stuck_resets_total", labels) == before + 2

    def test_stuck_expiries_counted_separately(self):
        metrics = get_metrics()
        labels = {"kind": "sentiment"}
        resets_before = _sample("agent_pulse_stuck_resets_total", labels)
        expired_before = _sample("agent_pulse_stuck_expired_total", labels)

        metrics.record_stuck_expired("sentiment", 3)

        assert _sample("agent_pulse_stuck_expired_total", labels) == expired_before + 3
        assert _sample("agent_pulse_stuck_resets_total", labels) == resets_before
