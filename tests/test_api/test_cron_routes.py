"""Tests for the scheduler trigger endpoints."""

import pytest

from agent_pulse.api.auth import verify_scheduler
from agent_pulse.ledger.runs import TriggerSource
from agent_pulse.services.collection_service import CollectionFailedError


class TestCollectTweets:
    """Tests for /cron/collect-tweets."""

    def test_get_runs_with_defaults(self, client, tweet_runner):
        response = client.get("/cron/collect-tweets")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["stats"]["new_count"] == 2
        assert data["stats"]["duplicate_count"] == 1
        assert "timestamp" in data
        request = tweet_runner.await_args.args[0]
        assert request.max_items == 100
        assert request.trigger_source == TriggerSource.MANUAL

    def test_post_body_is_forwarded(self, client, tweet_runner):
        response = client.post(
            "/cron/collect-tweets",
            json={"keywords": ["cursor"], "max_items": 10, "sort": "Top", "dry_run": True},
        )

        assert response.status_code == 200
        request = tweet_runner.await_args.args[0]
        assert request.keywords == ["cursor"]
        assert request.max_items == 10
        assert request.sort == "Top"
        assert request.dry_run is True

    def test_cron_caller_sets_trigger_source(self, app, client, tweet_runner):
        app.dependency_overrides[verify_scheduler] = lambda: "cron"

        client.get("/cron/collect-tweets")

        assert tweet_runner.await_args.args[0].trigger_source == TriggerSource.CRON

    def test_invalid_body(self, client, tweet_runner):
        response = client.post("/cron/collect-tweets", json={"max_items": 0})

        assert response.status_code == 422
        tweet_runner.assert_not_awaited()

    def test_failure_contract(self, client, tweet_runner):
        tweet_runner.side_effect = CollectionFailedError(
            "Tweet collection failed: actor timed out", run_id="run-1"
        )

        response = client.get("/cron/collect-tweets")

        assert response.status_code == 500
        data = response.json()
        assert data["success"] is False
        assert data["error"] == "Tweet collection failed: actor timed out"
        assert "timestamp" in data

    def test_configuration_error_uses_failure_contract(self, client, tweet_runner):
        tweet_runner.side_effect = ValueError("APIFY_TOKEN is not configured")

        response = client.post("/cron/collect-tweets")

        assert response.status_code == 500
        assert response.json()["error"] == "APIFY_TOKEN is not configured"


class TestSyncRss:
    """Tests for /cron/sync-rss."""

    def test_post_with_body(self, client, rss_runner):
        response = client.post("/cron/sync-rss", json={"limit": 50, "status": "unread"})

        assert response.status_code == 200
        assert response.json()["stats"]["pipeline"] == "rss"
        request = rss_runner.await_args.args[0]
        assert request.limit == 50
        assert request.status == "unread"

    def test_failure(self, client, rss_runner):
        rss_runner.side_effect = CollectionFailedError("RSS sync failed: 401", run_id="run-2")

        response = client.get("/cron/sync-rss")

        assert response.status_code == 500
        assert response.json()["success"] is False


class TestEnrichmentTriggers:
    """Tests for /cron/process-sentiments and /cron/generate-summaries."""

    def test_process_sentiments(self, client, sentiment_runner):
        response = client.get("/cron/process-sentiments", params={"batch_size": 50})

        assert response.status_code == 200
        assert response.json()["stats"]["processed"] == 2
        sentiment_runner.assert_awaited_once_with(50)

    def test_default_batch_size_is_none(self, client, sentiment_runner):
        client.post("/cron/process-sentiments")
        sentiment_runner.assert_awaited_once_with(None)

    @pytest.mark.parametrize("batch_size", [0, 201])
    def test_batch_size_bounds(self, client, sentiment_runner, batch_size):
        response = client.get("/cron/process-sentiments", params={"batch_size": batch_size})

        assert response.status_code == 422
        sentiment_runner.assert_not_awaited()

    def test_generate_summaries(self, client, summary_runner):
        response = client.get("/cron/generate-summaries")

        assert response.status_code == 200
        assert response.json()["stats"]["kind"] == "summary"
        assert response.json()["stats"]["failed"] == 1

    def test_generate_summaries_failure(self, client, summary_runner):
        summary_runner.side_effect = ConnectionError("pool closed")

        response = client.get("/cron/generate-summaries")

        assert response.status_code == 500
        assert response.json()["error"] == "pool closed"


class TestReconcileFailures:
    """Tests for /cron/reconcile-failures."""

    def test_query_params_forwarded(self, client, mock_maintenance):
        mock_maintenance.reconcile_failures.return_value = {"found": 3, "deleted": 0, "dry_run": True}

        response = client.get(
            "/cron/reconcile-failures", params={"dry_run": "true", "older_than_days": 7}
        )

        assert response.status_code == 200
        assert response.json()["stats"] == {"found": 3, "deleted": 0, "dry_run": True}
        mock_maintenance.reconcile_failures.assert_awaited_once_with(older_than_days=7, dry_run=True)
