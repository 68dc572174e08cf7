"""
Wiring of the security layer.

One SecurityContext per process holds the managers built on a shared
store. The app creates it in its lifespan; request handlers reach it
through ``get_security()``.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional
import logging

import httpx

from src.core.config import Settings, settings as default_settings
from src.core.exceptions import SecurityConfigurationError
from src.core.security.audit import SecurityAuditLogger
from src.core.security.csrf import CSRFTokenStore
from src.core.security.maintenance import SecurityMaintenance
from src.core.security.session_security import SessionManager
from src.core.security.stores import (
    Clock,
    InMemorySecurityStore,
    RedisSecurityStore,
    SecurityStore,
    utcnow,
)
from src.core.security.tokens import TokenManager
from src.services.redis_service import RedisService, create_redis_service

logger = logging.getLogger(__name__)


@dataclass
class SecurityContext:
    store: SecurityStore
    tokens: TokenManager
    sessions: SessionManager
    csrf: CSRFTokenStore
    audit: SecurityAuditLogger
    maintenance: SecurityMaintenance
    redis: Optional[RedisService] = None

    async def shutdown(self) -> None:
        await self.maintenance.stop()
        await self.audit.drain()
        if self.redis is not None:
            await self.redis.shutdown()


def build_security(
    config: Optional[Settings] = None,
    store: Optional[SecurityStore] = None,
    clock: Clock = utcnow,
    http_client: Optional[httpx.AsyncClient] = None,
    redis_service: Optional[RedisService] = None,
) -> SecurityContext:
    """Assemble the managers from settings around ``store`` (in-memory by default)"""
    config = config or default_settings
    store = store or InMemorySecurityStore()

    tokens = TokenManager(
        store,
        access_secret=config.JWT_SECRET,
        refresh_secret=config.JWT_REFRESH_SECRET,
        access_ttl=timedelta(minutes=config.ACCESS_TOKEN_TTL_MINUTES),
        refresh_ttl=timedelta(days=config.REFRESH_TOKEN_TTL_DAYS),
        algorithm=config.JWT_ALGORITHM,
        clock=clock,
    )
    sessions = SessionManager(store, ttl=timedelta(hours=config.SESSION_TTL_HOURS), clock=clock)
    csrf = CSRFTokenStore(
        store,
        ttl=timedelta(minutes=config.CSRF_TOKEN_TTL_MINUTES),
        single_use=config.CSRF_SINGLE_USE,
        clock=clock,
    )
    audit = SecurityAuditLogger(
        webhook_url=config.SECURITY_WEBHOOK,
        timeout=config.SECURITY_WEBHOOK_TIMEOUT,
        http_client=http_client,
        clock=clock,
    )
    maintenance = SecurityMaintenance(
        sessions, csrf, tokens, interval_seconds=config.CLEANUP_INTERVAL_SECONDS
    )

    return SecurityContext(
        store=store,
        tokens=tokens,
        sessions=sessions,
        csrf=csrf,
        audit=audit,
        maintenance=maintenance,
        redis=redis_service,
    )


async def create_security_store(config: Settings, clock: Clock = utcnow):
    """In-memory store, or the shared Redis store when REDIS_URL is set"""
    if not config.REDIS_URL:
        logger.info("Using in-memory security store (process-local)")
        return InMemorySecurityStore(), None

    redis_service = await create_redis_service(config.REDIS_URL)
    logger.info("Using Redis security store")
    return RedisSecurityStore(redis_service, clock=clock), redis_service


# Global instance - initialized in the app lifespan
security_context: Optional[SecurityContext] = None


def get_security() -> SecurityContext:
    """
    Get the global security context.

    Follows FastAPI dependency injection pattern.
    """
    if security_context is None:
        raise SecurityConfigurationError("Security layer not initialized", component="SecurityContext")
    return security_context


def set_security(context: Optional[SecurityContext]) -> Optional[SecurityContext]:
    """Install (or clear) the global security context"""
    global security_context
    security_context = context
    if context is not None:
        logger.info("🔐 Security layer initialized")
    return context
