"""
Security audit logging.

Every event is written as one structured line to the ``security.audit``
logger; that log is the durable record. Events above ``low`` severity are
additionally forwarded to SECURITY_WEBHOOK when one is configured: a single
POST with a bounded timeout, never retried, never awaited by the caller.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional, Set
import asyncio
import json
import logging

import httpx
from pydantic import BaseModel, ConfigDict, Field

from src.core.logging_config import AUDIT_LOGGER_NAME
from src.core.security.stores import Clock, utcnow

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


_LOG_LEVELS = {
    Severity.LOW: logging.INFO,
    Severity.MEDIUM: logging.WARNING,
    Severity.HIGH: logging.ERROR,
    Severity.CRITICAL: logging.CRITICAL,
}


class SecurityEvent(BaseModel):
    """Something security-relevant that happened while serving a request"""
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(default=None, alias="userId")
    action: str
    resource: str
    ip: str
    user_agent: str = Field(default="", alias="userAgent")
    success: bool
    details: Optional[Any] = None
    severity: Optional[Severity] = None


class SecurityLogEntry(SecurityEvent):
    """Event as logged and forwarded: timestamp and resolved severity"""
    timestamp: datetime
    severity: Severity

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class SecurityAuditLogger:
    """Structured security event logging with optional webhook forwarding"""

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        timeout: float = 5.0,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Clock = utcnow,
    ):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self._http_client = http_client
        self._clock = clock
        self._pending: Set[asyncio.Task] = set()

    def build_entry(self, event: SecurityEvent) -> SecurityLogEntry:
        severity = event.severity or (Severity.LOW if event.success else Severity.MEDIUM)
        return SecurityLogEntry(
            **event.model_dump(exclude={"severity"}),
            severity=severity,
            timestamp=self._clock(),
        )

    def log_security_event(self, event: SecurityEvent) -> SecurityLogEntry:
        """
        Log ``event`` and schedule webhook forwarding for severities above low.

        Returns immediately; forwarding happens in a background task.
        """
        entry = self.build_entry(event)
        outcome = "SUCCESS" if entry.success else "FAILED"

        audit_logger.log(
            _LOG_LEVELS[entry.severity],
            f"[SECURITY] {entry.action} on {entry.resource} by {entry.user_id} "
            f"from {entry.ip}: {outcome} {json.dumps(entry.to_payload(), default=str)}"
        )

        if self.webhook_url and entry.severity != Severity.LOW:
            self._schedule_forward(entry)

        return entry

    def _schedule_forward(self, entry: SecurityLogEntry) -> None:
        try:
            task = asyncio.get_running_loop().create_task(self.forward_to_webhook(entry))
        except RuntimeError:
            logger.warning("No running event loop, security event not forwarded")
            return

        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def forward_to_webhook(self, entry: SecurityLogEntry) -> bool:
        """
        POST ``entry`` to the webhook once. Failures are logged, never raised.

        Returns:
            True if the webhook answered with a 2xx status
        """
        if not self.webhook_url:
            return False

        try:
            if self._http_client is not None:
                response = await self._http_client.post(
                    self.webhook_url, json=entry.to_payload(), timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.webhook_url, json=entry.to_payload())
        except Exception as e:
            logger.error(f"Failed to send security log: {type(e).__name__}: {e}")
            return False

        if response.is_success:
            return True

        logger.error(f"Security webhook returned {response.status_code}")
        return False

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for in-flight webhook deliveries (shutdown and tests)"""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
