# tests/core/test_audit.py
"""Unit tests for SecurityAuditLogger"""

import json
import logging

import httpx
import pytest

from src.core.security import SecurityAuditLogger, SecurityEvent, Severity

WEBHOOK = "https://siem.example.test/hooks/security"


def make_event(**overrides) -> SecurityEvent:
    data = {
        "userId": "user-1",
        "action": "login",
        "resource": "/api/auth/login",
        "ip": "203.0.113.7",
        "userAgent": "pytest",
        "success": True,
    }
    data.update(overrides)
    return SecurityEvent(**data)


class RecordingTransport:
    """httpx handler that records requests and answers with a fixed status"""

    def __init__(self, status_code: int = 200, error: Exception = None):
        self.status_code = status_code
        self.error = error
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, json={"ignored": True})


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
async def webhook_logger(transport, clock):
    async with httpx.AsyncClient(transport=httpx.MockTransport(transport)) as client:
        yield SecurityAuditLogger(webhook_url=WEBHOOK, http_client=client, clock=clock)


class TestSeverity:

    def test_success_defaults_to_low(self, audit_logger):
        entry = audit_logger.log_security_event(make_event(success=True))
        assert entry.severity == Severity.LOW

    def test_failure_defaults_to_medium(self, audit_logger):
        entry = audit_logger.log_security_event(make_event(success=False))
        assert entry.severity == Severity.MEDIUM

    def test_explicit_severity_wins(self, audit_logger):
        entry = audit_logger.log_security_event(make_event(success=True, severity="critical"))
        assert entry.severity == Severity.CRITICAL


class TestLogLine:

    def test_structured_line_written(self, audit_logger, caplog, clock):
        with caplog.at_level(logging.INFO, logger="security.audit"):
            audit_logger.log_security_event(make_event(success=False, details={"username": "bob"}))

        record = caplog.records[-1]
        assert record.name == "security.audit"
        assert record.levelno == logging.WARNING
        assert "[SECURITY] login on /api/auth/login by user-1 from 203.0.113.7: FAILED" in record.getMessage()

        payload = json.loads(record.getMessage().split("FAILED ", 1)[1])
        assert payload["severity"] == "medium"
        assert payload["userAgent"] == "pytest"
        assert payload["details"] == {"username": "bob"}
        assert payload["timestamp"].startswith(clock().date().isoformat())

    def test_entry_payload_omits_missing_fields(self, audit_logger):
        entry = audit_logger.log_security_event(make_event(userId=None))
        payload = entry.to_payload()

        assert "userId" not in payload
        assert "details" not in payload
        assert set(payload) >= {"timestamp", "severity", "action", "resource", "ip", "userAgent", "success"}


class TestWebhookForwarding:

    async def test_low_severity_not_forwarded(self, webhook_logger, transport):
        webhook_logger.log_security_event(make_event(success=True))
        await webhook_logger.drain()

        assert transport.requests == []

    async def test_medium_severity_forwarded_in_background(self, webhook_logger, transport):
        entry = webhook_logger.log_security_event(make_event(success=False))
        assert webhook_logger.pending == 1

        await webhook_logger.drain()

        assert len(transport.requests) == 1
        request = transport.requests[0]
        assert request.method == "POST"
        assert str(request.url) == WEBHOOK
        assert request.headers["content-type"] == "application/json"
        assert json.loads(request.content) == entry.to_payload()

    async def test_not_forwarded_without_webhook(self, audit_logger):
        audit_logger.log_security_event(make_event(success=False, severity="high"))
        assert audit_logger.pending == 0

    async def test_forward_returns_true_on_success(self, webhook_logger, audit_logger):
        entry = audit_logger.build_entry(make_event(severity="high"))
        assert await webhook_logger.forward_to_webhook(entry) is True

    async def test_webhook_error_status_is_swallowed(self, transport, clock, caplog):
        transport.status_code = 500
        async with httpx.AsyncClient(transport=httpx.MockTransport(transport)) as client:
            logger = SecurityAuditLogger(webhook_url=WEBHOOK, http_client=client, clock=clock)
            entry = logger.build_entry(make_event(success=False))

            assert await logger.forward_to_webhook(entry) is False

        assert "Security webhook returned 500" in caplog.text

    async def test_webhook_timeout_is_swallowed_and_not_retried(self, clock, caplog):
        transport = RecordingTransport(error=httpx.ReadTimeout("timed out"))
        async with httpx.AsyncClient(transport=httpx.MockTransport(transport)) as client:
            logger = SecurityAuditLogger(webhook_url=WEBHOOK, http_client=client, clock=clock)

            logger.log_security_event(make_event(success=False))
            await logger.drain()

        assert len(transport.requests) == 1
        assert "Failed to send security log" in caplog.text

    async def test_timeout_is_passed_to_request(self, webhook_logger, transport):
        entry = webhook_logger.build_entry(make_event(severity="medium"))
        await webhook_logger.forward_to_webhook(entry)

        timeout = transport.requests[0].extensions["timeout"]
        assert timeout["connect"] == 5.0
        assert timeout["read"] == 5.0
