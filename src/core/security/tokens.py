"""
Access/refresh token management.

Tokens are HS256 JWTs carrying ``userId``, ``role``, ``type``, ``iat``,
``exp`` and a random ``jti``. Access and refresh tokens are signed with
different secrets. Revocation is by exact token string: the blacklist
stores a digest of the string together with the token's own expiry, and
the periodic sweep drops entries once that expiry has passed.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
import hashlib
import logging
import secrets

import jwt
from jwt.exceptions import PyJWTError
from pydantic import BaseModel, ConfigDict, Field

from src.core.exceptions import InvalidTokenError, TokenExpiredError, TokenRevokedError
from src.core.security.stores import BLACKLIST, Clock, SecurityStore, is_expired, utcnow

logger = logging.getLogger(__name__)

ACCESS = "access"
REFRESH = "refresh"

REQUIRED_CLAIMS = ["userId", "role", "type", "iat", "exp", "jti"]


class TokenPair(BaseModel):
    """Access and refresh token issued together"""
    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(alias="accessToken")
    refresh_token: str = Field(alias="refreshToken")


def _fingerprint(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class TokenManager:
    """
    Mint, verify and revoke access/refresh tokens.

    Missing secrets are replaced by process-random ones; tokens signed with
    those become unverifiable after a restart or on another instance.
    """

    def __init__(
        self,
        store: SecurityStore,
        access_secret: Optional[str] = None,
        refresh_secret: Optional[str] = None,
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
        algorithm: str = "HS256",
        clock: Clock = utcnow,
    ):
        self._store = store
        self._clock = clock
        self.algorithm = algorithm
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

        if not access_secret:
            logger.warning("⚠️ No JWT_SECRET set. Generated a temporary access token secret.")
            access_secret = secrets.token_urlsafe(64)
        if not refresh_secret:
            logger.warning("⚠️ No JWT_REFRESH_SECRET set. Generated a temporary refresh token secret.")
            refresh_secret = secrets.token_urlsafe(64)

        self._secrets = {ACCESS: access_secret, REFRESH: refresh_secret}
        self._ttls = {ACCESS: access_ttl, REFRESH: refresh_ttl}

    def _sign(self, user_id: str, role: str, token_type: str) -> str:
        now = self._clock()
        payload = {
            "userId": user_id,
            "role": role,
            "type": token_type,
            "iat": int(now.timestamp()),
            "exp": int((now + self._ttls[token_type]).timestamp()),
            "jti": secrets.token_hex(16),
        }
        return jwt.encode(payload, self._secrets[token_type], algorithm=self.algorithm)

    def generate_token_pair(self, user_id: str, role: str) -> TokenPair:
        """Issue a fresh access token (15 min) and refresh token (7 days)"""
        pair = TokenPair(
            access_token=self._sign(user_id, role, ACCESS),
            refresh_token=self._sign(user_id, role, REFRESH),
        )
        logger.debug(f"Issued token pair for user {user_id} ({role})")
        return pair

    async def _verify(self, token: str, token_type: str) -> Dict[str, Any]:
        if await self.is_revoked(token):
            raise TokenRevokedError("Token has been revoked", token_type=token_type)

        try:
            # Expiry is checked against the injected clock below
            payload = jwt.decode(
                token,
                self._secrets[token_type],
                algorithms=[self.algorithm],
                options={
                    "verify_exp": False,
                    "verify_iat": False,
                    "require": REQUIRED_CLAIMS,
                },
            )
        except PyJWTError as e:
            raise InvalidTokenError(f"Invalid token: {e}", token_type=token_type) from e

        if payload.get("type") != token_type:
            raise InvalidTokenError(f"Expected a {token_type} token", token_type=token_type)

        if payload["exp"] <= self._clock().timestamp():
            raise TokenExpiredError("Token has expired", token_type=token_type)

        return payload

    async def verify_access_token(self, token: str) -> Dict[str, Any]:
        """
        Verify an access token and return its claims.

        Raises:
            TokenRevokedError: token string is blacklisted
            TokenExpiredError: exp has passed
            InvalidTokenError: bad signature, malformed, or not an access token
        """
        return await self._verify(token, ACCESS)

    async def verify_refresh_token(self, token: str) -> Dict[str, Any]:
        """Verify a refresh token; same errors as verify_access_token"""
        return await self._verify(token, REFRESH)

    async def revoke_token(self, token: str) -> None:
        """Blacklist the exact token string until its own expiry"""
        expires_at = None
        try:
            claims = jwt.decode(token, options={"verify_signature": False})
            if isinstance(claims.get("exp"), (int, float)):
                expires_at = datetime.fromtimestamp(claims["exp"], tz=timezone.utc)
        except PyJWTError:
            logger.debug("Revoking undecodable token string")

        if expires_at is None:
            expires_at = self._clock() + self.refresh_ttl

        await self._store.put(BLACKLIST, _fingerprint(token), {}, expires_at)
        logger.info(f"🔒 Token revoked until {expires_at.isoformat()}")

    async def is_revoked(self, token: str) -> bool:
        return await self._store.get(BLACKLIST, _fingerprint(token)) is not None

    async def rotate_refresh_token(self, refresh_token: str) -> TokenPair:
        """Exchange a valid refresh token for a new pair; the old one is revoked"""
        claims = await self.verify_refresh_token(refresh_token)
        await self.revoke_token(refresh_token)
        return self.generate_token_pair(claims["userId"], claims["role"])

    async def cleanup_blacklist(self) -> int:
        """Drop blacklist entries whose token has expired anyway"""
        now = self._clock()
        expired = [key for key, record in await self._store.items(BLACKLIST) if is_expired(record, now)]
        for key in expired:
            await self._store.delete(BLACKLIST, key)

        if expired:
            logger.info(f"🧹 Evicted {len(expired)} expired blacklist entries")
        return len(expired)
