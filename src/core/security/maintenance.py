"""Periodic sweep of expired sessions, CSRF tokens and blacklist entries"""

from typing import Dict, Optional
import asyncio
import logging

from src.core.security.csrf import CSRFTokenStore
from src.core.security.session_security import SessionManager
from src.core.security.tokens import TokenManager

logger = logging.getLogger(__name__)


class SecurityMaintenance:
    """Runs the cleanup of all security stores on a fixed interval."""

    def __init__(
        self,
        sessions: SessionManager,
        csrf: CSRFTokenStore,
        tokens: TokenManager,
        interval_seconds: float = 3600,
    ):
        self.sessions = sessions
        self.csrf = csrf
        self.tokens = tokens
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    async def run_once(self) -> Dict[str, int]:
        """Sweep every store once and report how many records were removed"""
        removed = {
            "sessions": await self.sessions.cleanup(),
            "csrf_tokens": await self.csrf.cleanup(),
            "blacklist": await self.tokens.cleanup_blacklist(),
        }
        logger.debug(f"Security sweep finished: {removed}")
        return removed

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.run_once()
            except Exception:
                logger.exception("Error during security store cleanup")

    def start(self) -> asyncio.Task:
        """Start the background loop (idempotent)"""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop())
            logger.info(f"🧹 Security cleanup scheduled every {self.interval_seconds:.0f}s")
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
