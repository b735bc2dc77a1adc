"""
FastAPI trigger and dashboard service.

Provides:
- GET|POST /cron/* - scheduler triggers for each batch job
- GET /rss/entries, /metrics/sentiment, /research - dashboard reads
- GET /health - service health check
"""

from agent_pulse.api.app import create_app

__all__ = ["create_app"]
