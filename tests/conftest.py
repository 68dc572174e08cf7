# tests/conftest.py
"""
Shared fixtures for security layer tests.

Everything runs against the in-memory store with a controllable clock,
so expiry can be tested without sleeping.
"""

import pytest
from datetime import datetime, timedelta, timezone

from src.core.config import Settings
from src.core.security import (
    CSRFTokenStore,
    InMemorySecurityStore,
    SecurityAuditLogger,
    SessionManager,
    TokenManager,
    build_security,
)


ACCESS_SECRET = "test-access-secret-0123456789abcdef0123456789"
REFRESH_SECRET = "test-refresh-secret-0123456789abcdef012345678"


class FakeClock:
    """Callable clock that only moves when told to"""

    def __init__(self, start: datetime = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemorySecurityStore()


@pytest.fixture
def test_settings():
    """Settings isolated from the developer's environment and .env"""
    return Settings(
        _env_file=None,
        JWT_SECRET=ACCESS_SECRET,
        JWT_REFRESH_SECRET=REFRESH_SECRET,
        SECURITY_WEBHOOK=None,
        REDIS_URL=None,
    )


@pytest.fixture
def token_manager(store, clock):
    return TokenManager(store, access_secret=ACCESS_SECRET, refresh_secret=REFRESH_SECRET, clock=clock)


@pytest.fixture
def session_manager(store, clock):
    return SessionManager(store, clock=clock)


@pytest.fixture
def csrf_store(store, clock):
    return CSRFTokenStore(store, clock=clock)


@pytest.fixture
def audit_logger(clock):
    return SecurityAuditLogger(clock=clock)


@pytest.fixture
def security_context(test_settings, store, clock):
    return build_security(test_settings, store=store, clock=clock)
