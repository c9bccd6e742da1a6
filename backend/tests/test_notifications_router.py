"""Tests for the operator channel-check endpoints."""
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from rentwatch.main import app
from rentwatch.routers.notifications import get_email_sender, get_sms_sender
from rentwatch.services.channels import SendResult


AUTH = {"Authorization": "Bearer s3cret"}


@pytest.fixture(autouse=True)
def cron_secret(monkeypatch):
    monkeypatch.setenv("CRON_SECRET", "s3cret")


@pytest.fixture
def email_sender():
    sender = MagicMock()
    sender.configured = True
    sender.send = AsyncMock(return_value=SendResult(success=True, message_id="email-1", status="sent"))
    sender.send_test = AsyncMock(return_value=SendResult(success=True, message_id="email-0", status="sent"))
    return sender


@pytest.fixture
def sms_sender():
    sender = MagicMock()
    sender.configured = True
    sender.send = AsyncMock(return_value=SendResult(success=True, message_id="SM1", status="queued"))
    sender.check_connection = AsyncMock(return_value={
        "success": True,
        "message": "Twilio connection successful",
        "account_sid": "AC123",
        "phone_number": "+15005550006",
    })
    return sender


@pytest.fixture
def client(email_sender, sms_sender):
    app.dependency_overrides[get_email_sender] = lambda: email_sender
    app.dependency_overrides[get_sms_sender] = lambda: sms_sender
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestAuth:
    @pytest.mark.parametrize("method,path", [
        ("get", "/api/notifications/test-email"),
        ("post", "/api/notifications/test-email"),
        ("get", "/api/notifications/test-sms"),
        ("post", "/api/notifications/test-sms"),
    ])
    def test_secret_required(self, client, method, path):
        response = getattr(client, method)(path, headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401


class TestEmailCheck:
    def test_simple_check(self, client, email_sender):
        response = client.post("/api/notifications/test-email", json={"email": "ops@example.com"}, headers=AUTH)

        assert response.status_code == 200
        assert response.json()["message_id"] == "email-0"
        email_sender.send_test.assert_awaited_once_with("ops@example.com")
        email_sender.send.assert_not_called()

    def test_rental_sample_uses_real_templates(self, client, email_sender):
        response = client.post(
            "/api/notifications/test-email",
            json={"email": "ops@example.com", "test_type": "rental"},
            headers=AUTH,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["preview"]["subject"] == "New Rental Match: 2BR in East Village - $3,500"
        args, kwargs = email_sender.send.call_args
        assert args[0] == "ops@example.com"
        assert args[1] == "[TEST] New Rental Match: 2BR in East Village - $3,500"
        assert "New Rental Match!" in kwargs["text"]

    def test_invalid_address(self, client):
        response = client.post("/api/notifications/test-email", json={"email": "nope"}, headers=AUTH)
        assert response.status_code == 400

    def test_unknown_test_type(self, client):
        response = client.post(
            "/api/notifications/test-email",
            json={"email": "ops@example.com", "test_type": "bogus"},
            headers=AUTH,
        )
        assert response.status_code == 422

    def test_unconfigured_is_503(self, client, email_sender):
        email_sender.configured = False
        response = client.post("/api/notifications/test-email", json={"email": "ops@example.com"}, headers=AUTH)
        assert response.status_code == 503

    def test_provider_failure_is_500(self, client, email_sender):
        email_sender.send_test = AsyncMock(return_value=SendResult(success=False, error="rate limited"))
        response = client.post("/api/notifications/test-email", json={"email": "ops@example.com"}, headers=AUTH)
        assert response.status_code == 500
        assert response.json()["detail"] == "rate limited"

    def test_status(self, client):
        response = client.get("/api/notifications/test-email", headers=AUTH)
        assert response.json() == {"email_service_enabled": True, "status": "operational"}


class TestSmsCheck:
    def test_sends_to_normalized_number(self, client, sms_sender):
        response = client.post(
            "/api/notifications/test-sms",
            json={"to": "(212) 555-0100", "message": "hello"},
            headers=AUTH,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["phone_number"] == "+12125550100"
        assert body["message_sid"] == "SM1"
        sms_sender.send.assert_awaited_once_with("+12125550100", "hello")

    def test_bad_number_rejected(self, client, sms_sender):
        response = client.post(
            "/api/notifications/test-sms", json={"to": "555-0100", "message": "hello"}, headers=AUTH,
        )
        assert response.status_code == 400
        sms_sender.send.assert_not_called()

    def test_unconfigured_is_503(self, client, sms_sender):
        sms_sender.configured = False
        response = client.post(
            "/api/notifications/test-sms", json={"to": "+12125550100", "message": "hello"}, headers=AUTH,
        )
        assert response.status_code == 503

    def test_connection_check(self, client):
        response = client.get("/api/notifications/test-sms", headers=AUTH)
        assert response.status_code == 200
        assert response.json()["account_sid"] == "AC123"
        assert response.json()["sms_enabled"] is True

    def test_connection_failure_is_503(self, client, sms_sender):
        sms_sender.check_connection = AsyncMock(return_value={
            "success": False, "message": "Twilio connection failed: Authenticate",
        })
        response = client.get("/api/notifications/test-sms", headers=AUTH)
        assert response.status_code == 503
