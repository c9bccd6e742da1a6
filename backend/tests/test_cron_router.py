"""Tests for the cron endpoints."""
from datetime import datetime, timezone
from unittest.mock import patch, AsyncMock

import pytest
from fastapi.testclient import TestClient

from rentwatch.main import app
from rentwatch.services.orchestrator import RunStats


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def cron_secret(monkeypatch):
    monkeypatch.setenv("CRON_SECRET", "s3cret")
    return "s3cret"


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_health_reports_channel_configuration(self, client, monkeypatch):
        monkeypatch.setenv("RESEND_API_KEY", "re_123")
        for key in ("TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_PHONE_NUMBER"):
            monkeypatch.delenv(key, raising=False)

        channels = client.get("/health").json()["channels"]

        assert channels["email"]["configured"] is True
        assert channels["sms"]["configured"] is False


class TestCheckAlerts:
    def test_missing_header_rejected(self, client, cron_secret):
        assert client.get("/api/cron/check-alerts").status_code == 401

    def test_wrong_secret_rejected(self, client, cron_secret):
        response = client.get("/api/cron/check-alerts", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    def test_unset_secret_rejects_everything(self, client, monkeypatch):
        monkeypatch.delenv("CRON_SECRET", raising=False)
        response = client.get("/api/cron/check-alerts", headers={"Authorization": "Bearer anything"})
        assert response.status_code == 401

    def test_runs_check_and_returns_stats(self, client, cron_secret):
        stats = RunStats(started_at=datetime(2026, 10, 18, tzinfo=timezone.utc), alerts_processed=2, notifications_sent=1)
        with patch("rentwatch.routers.cron.run_alert_check", AsyncMock(return_value=stats)) as mock_run:
            response = client.get("/api/cron/check-alerts", headers={"Authorization": f"Bearer {cron_secret}"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["stats"]["alerts_processed"] == 2
        assert body["stats"]["notifications_sent"] == 1
        mock_run.assert_awaited_once_with(trigger="http")

    def test_crash_returns_500(self, client, cron_secret):
        with patch("rentwatch.routers.cron.run_alert_check", AsyncMock(side_effect=RuntimeError("db down"))):
            response = client.get("/api/cron/check-alerts", headers={"Authorization": f"Bearer {cron_secret}"})
        assert response.status_code == 500


class TestHistoryAndStats:
    def test_history(self, client, cron_secret):
        with patch("rentwatch.routers.cron.RunLog") as mock_log:
            mock_log.return_value.get_history = AsyncMock(return_value=[{"id": "run-1"}])
            response = client.get("/api/cron/history?limit=5", headers={"Authorization": f"Bearer {cron_secret}"})

        assert response.status_code == 200
        assert response.json() == {"runs": [{"id": "run-1"}], "count": 1}
        mock_log.return_value.get_history.assert_awaited_once_with(limit=5)

    def test_stats_requires_secret(self, client, cron_secret):
        assert client.get("/api/cron/stats").status_code == 401

    def test_stats(self, client, cron_secret):
        with patch("rentwatch.routers.cron.RunLog") as mock_log:
            mock_log.return_value.get_stats = AsyncMock(return_value={"total_runs": 4, "success_rate": 75.0})
            response = client.get("/api/cron/stats", headers={"Authorization": f"Bearer {cron_secret}"})

        assert response.status_code == 200
        assert response.json()["success_rate"] == 75.0
