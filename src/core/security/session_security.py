"""
Server-side sessions kept in parallel to tokens.

A session is bound to the IP it was created from. Any lookup with a
different IP, after expiry, or for an unknown id returns None and deletes
whatever record existed, so callers cannot tell the three cases apart.
"""

from typing import Any, Dict, Optional
from datetime import datetime, timedelta
import logging
import secrets

from pydantic import BaseModel, Field

from src.core.security.stores import SESSIONS, Clock, SecurityStore, is_expired, utcnow

logger = logging.getLogger(__name__)


class SessionRecord(BaseModel):
    """Stored session; the session id is the store key"""
    session_id: str = Field(default_factory=lambda: secrets.token_urlsafe(32))
    user_id: str
    ip: str
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class SessionManager:
    """
    Session store with fixed 24h expiry and strict IP binding.

    Design decisions:
    1. Fail-secure - no auto-creation, explicit validation
    2. Returns Optional instead of exceptions
    3. Stale records are purged on lookup and by the periodic sweep
    """

    def __init__(
        self,
        store: SecurityStore,
        ttl: timedelta = timedelta(hours=24),
        clock: Clock = utcnow,
    ):
        self._store = store
        self._clock = clock
        self.ttl = ttl

        # Metrics for monitoring
        self._creation_count = 0
        self._validation_failures = 0

    async def create_session(self, user_id: str, ip: str) -> str:
        """Create a session bound to ``ip`` and return its id"""
        record = SessionRecord(user_id=user_id, ip=ip, expires_at=self._clock() + self.ttl)
        await self._store.put(
            SESSIONS,
            record.session_id,
            {"user_id": record.user_id, "ip": record.ip},
            record.expires_at,
        )
        self._creation_count += 1

        logger.info(f"🔐 Created session {record.session_id[:8]}... for user {user_id}")
        return record.session_id

    async def _load(self, session_id: str) -> Optional[SessionRecord]:
        raw = await self._store.get(SESSIONS, session_id)
        if raw is None:
            return None
        return SessionRecord(session_id=session_id, **raw)

    async def validate_session(self, session_id: str, ip: str) -> Optional[str]:
        """
        Return the session's user id if it exists, is unexpired and ``ip``
        matches the originating IP. Otherwise purge it and return None.
        """
        record = await self._load(session_id)

        if record is None or record.is_expired(self._clock()) or record.ip != ip:
            self._validation_failures += 1
            await self._store.delete(SESSIONS, session_id)
            logger.debug(f"Session {session_id[:8]}... rejected")
            return None

        return record.user_id

    async def revoke_session(self, session_id: str) -> None:
        """Explicitly remove a session"""
        await self._store.delete(SESSIONS, session_id)
        logger.debug(f"🗑️ Revoked session {session_id[:8]}...")

    async def cleanup(self) -> int:
        """Remove sessions whose expiry is strictly in the past"""
        now = self._clock()
        expired = [sid for sid, record in await self._store.items(SESSIONS) if is_expired(record, now)]
        for sid in expired:
            await self._store.delete(SESSIONS, sid)

        if expired:
            logger.info(f"🧹 Cleaned up {len(expired)} expired sessions")
        return len(expired)

    async def get_metrics(self) -> Dict[str, int]:
        """Get store metrics for monitoring"""
        return {
            "active_sessions": await self._store.count(SESSIONS),
            "total_created": self._creation_count,
            "validation_failures": self._validation_failures,
        }

    async def get_session_info(self, session_id: str) -> Optional[Dict[str, Any]]:
        """
        Get session information for debugging.

        Used by admin/debug endpoints only.
        """
        record = await self._load(session_id)
        if record is None:
            return None

        return {
            "session_id": session_id,
            "user_id": record.user_id,
            "ip": record.ip,
            "expires_at": record.expires_at.isoformat(),
            "is_expired": record.is_expired(self._clock()),
        }
