"""Observability layer - logging and metrics."""

from agent_pulse.observability.logging import setup_logging
from agent_pulse.observability.metrics import MetricsCollector, get_metrics

__all__ = ["setup_logging", "MetricsCollector", "get_metrics"]
