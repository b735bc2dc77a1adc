"""Tests for the health endpoint."""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from agent_pulse.api.dependencies import get_claim_queues, get_database, get_enrichment_config
from agent_pulse.api.routes.health import evaluate_queue
from agent_pulse.config.settings import Settings, get_settings
from agent_pulse.enrichment.config import EnrichmentConfig
from agent_pulse.queues.claim_queue import QueueStats


def _mock_db(healthy: bool = True) -> AsyncMock:
    db = AsyncMock()
    if healthy:
        db.health_check = AsyncMock(return_value=True)
    else:
        db.health_check = AsyncMock(side_effect=Exception("Connection refused"))
    return db


@pytest.fixture
def health_client(app):
    def _make(db, queues, settings: Settings | None = None) -> TestClient:
        app.dependency_overrides[get_database] = lambda: db
        app.dependency_overrides[get_claim_queues] = lambda: queues
        app.dependency_overrides[get_settings] = lambda: settings or Settings()
        app.dependency_overrides[get_enrichment_config] = lambda: EnrichmentConfig(stuck_timeout_minutes=30)
        return TestClient(app)

    return _make


class TestHealthEndpoint:
    """Tests for GET /health."""

    def test_healthy(self, health_client, queue_factory):
        client = health_client(
            _mock_db(), [queue_factory("sentiment", 12), queue_factory("summary", 0)]
        )

        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["queue_depths"] == {"sentiment": 12, "summary": 0}
        assert data["components"]["database"]["status"] == "healthy"
        assert data["version"]

    def test_backlog_over_warning_threshold(self, health_client, queue_factory):
        client = health_client(
            _mock_db(), [queue_factory("sentiment", 250), queue_factory("summary", 0)]
        )

        data = client.get("/health").json()

        assert data["status"] == "warning"
        assert data["queues"]["sentiment"]["status"] == "warning"
        assert data["queues"]["summary"]["status"] == "healthy"
        assert data["issues"] == ["sentiment: Warning: 250 pending records (threshold: 200)"]

    def test_stuck_claims_and_failure_rate_reported(self, health_client, queue_factory):
        client = health_client(
            _mock_db(),
            [
                queue_factory("sentiment", 3),
                queue_factory("summary", 4, stuck=11, recent_total=40, recent_failed=6),
            ],
        )

        data = client.get("/health").json()

        summary = data["queues"]["summary"]
        assert data["status"] == "critical"
        assert summary["status"] == "critical"
        assert summary["stuck"] == 11
        assert summary["stuck_timeout_minutes"] == 30
        assert summary["failure_rate"] == 15.0
        assert summary["failed_count"] == 6
        assert summary["total_count"] == 40
        assert summary["window_hours"] == 24
        assert any(issue.startswith("Critical: 11 records stuck") for issue in summary["issues"])
        assert any(issue.startswith("Warning: 15.0% failure rate") for issue in summary["issues"])

    def test_queue_stats_use_stuck_timeout_and_window(self, health_client, queue_factory):
        queue = queue_factory("sentiment", 0)
        client = health_client(
            _mock_db(), [queue], settings=Settings(health_failure_window_hours=6)
        )

        client.get("/health")

        queue.queue_stats.assert_awaited_once_with(30, window_hours=6)

    def test_thresholds_are_configurable(self, health_client, queue_factory):
        settings = Settings(health_stuck_warning=0, health_stuck_critical=100)
        client = health_client(_mock_db(), [queue_factory("sentiment", 0, stuck=1)], settings=settings)

        data = client.get("/health").json()

        assert data["status"] == "warning"

    def test_degraded_when_queue_depth_unreadable(self, health_client, queue_factory):
        client = health_client(
            _mock_db(),
            [queue_factory("sentiment", 3), queue_factory("summary", error=RuntimeError("timeout"))],
        )

        data = client.get("/health").json()

        assert data["status"] == "degraded"
        assert data["queue_depths"]["summary"] == -1

    def test_unhealthy_when_database_down(self, health_client, queue_factory):
        queue = queue_factory("sentiment", 3)
        client = health_client(_mock_db(healthy=False), [queue])

        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "unhealthy"
        assert data["components"]["database"]["details"]["error"] == "Connection refused"
        assert data["queue_depths"] == {}
        queue.queue_stats.assert_not_awaited()

    def test_root(self, client):
        data = client.get("/").json()
        assert data["service"] == "agent-pulse API"
        assert data["docs"] == "/docs"

    def test_request_id_echoed(self, client):
        response = client.get("/", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"


class TestEvaluateQueue:
    """Tests for the per-queue threshold grading."""

    def test_quiet_queue_is_healthy(self):
        health = evaluate_queue(QueueStats(pending=10, recent_total=100, recent_failed=5), Settings(), 30)

        assert health.status == "healthy"
        assert health.failure_rate == 5.0
        assert health.issues == []

    def test_thresholds_are_exclusive(self):
        stats = QueueStats(pending=200, stuck=5, recent_total=10, recent_failed=1)

        assert evaluate_queue(stats, Settings(), 30).status == "healthy"

    def test_worst_signal_wins(self):
        stats = QueueStats(pending=600, stuck=6, recent_total=4, recent_failed=2)

        health = evaluate_queue(stats, Settings(), 30)

        assert health.status == "critical"
        assert health.issues == [
            "Critical: 600 pending records (threshold: 500)",
            "Critical: 50.0% failure rate over 24h (threshold: 25)",
            "Warning: 6 records stuck in processing over 30 minutes (threshold: 5)",
        ]

    def test_empty_window_has_zero_failure_rate(self):
        assert evaluate_queue(QueueStats(), Settings(), 30).failure_rate == 0.0
