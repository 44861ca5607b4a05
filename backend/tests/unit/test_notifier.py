"""Tests for OTP delivery backends."""

import json
import logging

import httpx
import pytest

from ridepool.core.config import settings
from ridepool.services.notifier import (
    LogNotifier,
    ResendEmailNotifier,
    get_notifier,
)


def _notifier(handler) -> ResendEmailNotifier:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ResendEmailNotifier(
        api_key="re_test_key",
        sender="noreply@ridepool.app",
        ttl_minutes=10,
        client=client,
    )


class TestLogNotifier:
    async def test_logs_code(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.INFO, logger="ridepool.services.notifier"):
            assert await LogNotifier().send("+919876543210", "123456", "login")
        assert "123456" in caplog.text


class TestResendEmailNotifier:
    async def test_posts_email(self) -> None:
        captured: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(200, json={"id": "email_1"})

        delivered = await _notifier(handler).send("rider@example.com", "654321", "signup")

        assert delivered is True
        request = captured[0]
        assert str(request.url) == "https://api.resend.com/emails"
        assert request.headers["authorization"] == "Bearer re_test_key"
        body = json.loads(request.content)
        assert body["to"] == "rider@example.com"
        assert body["subject"] == "Verify your Ridepool account"
        assert "654321" in body["text"]
        assert "10 minutes" in body["text"]

    async def test_http_error_reports_failure(self) -> None:
        def handler(_request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, json={"message": "down"})

        assert await _notifier(handler).send("rider@example.com", "1", "login") is False

    async def test_transport_error_reports_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        assert await _notifier(handler).send("rider@example.com", "1", "login") is False

    async def test_phone_key_not_deliverable(self) -> None:
        def handler(_request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        assert await _notifier(handler).send("+919876543210", "1", "login") is False


class TestGetNotifier:
    def test_log_backend(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "notifier_backend", "log")
        assert isinstance(get_notifier(), LogNotifier)

    def test_resend_backend(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "notifier_backend", "resend")
        assert isinstance(get_notifier(), ResendEmailNotifier)
