"""Anti-CSRF token issuance and validation"""

from datetime import timedelta
import logging
import secrets

from src.core.security.stores import CSRF_TOKENS, Clock, SecurityStore, is_expired, utcnow

logger = logging.getLogger(__name__)


class CSRFTokenStore:
    """
    Random CSRF tokens with a fixed lifetime (1h by default).

    Tokens stay reusable until they expire unless ``single_use`` is set,
    in which case a successful validation consumes the token.
    """

    def __init__(
        self,
        store: SecurityStore,
        ttl: timedelta = timedelta(hours=1),
        single_use: bool = False,
        clock: Clock = utcnow,
    ):
        self._store = store
        self._clock = clock
        self.ttl = ttl
        self.single_use = single_use

    async def generate_csrf_token(self) -> str:
        token = secrets.token_urlsafe(32)
        await self._store.put(CSRF_TOKENS, token, {}, self._clock() + self.ttl)
        return token

    async def validate_csrf_token(self, token: str) -> bool:
        if not token:
            return False

        record = await self._store.get(CSRF_TOKENS, token)
        if record is None:
            return False

        if is_expired(record, self._clock()):
            await self._store.delete(CSRF_TOKENS, token)
            return False

        if self.single_use:
            await self._store.delete(CSRF_TOKENS, token)
        return True

    async def cleanup(self) -> int:
        """Remove CSRF tokens whose expiry is strictly in the past"""
        now = self._clock()
        expired = [t for t, record in await self._store.items(CSRF_TOKENS) if is_expired(record, now)]
        for token in expired:
            await self._store.delete(CSRF_TOKENS, token)

        if expired:
            logger.info(f"🧹 Cleaned up {len(expired)} expired CSRF tokens")
        return len(expired)
