"""
Persistence backends for the security layer.

The blacklist, sessions and CSRF tokens all live behind the same small
async interface so the managers never touch process globals. Records are
plain dicts that always carry an ``expires_at`` (ISO-8601, UTC); expiry is
decided by the managers against their injected clock, the Redis backend
additionally sets a native TTL so abandoned keys disappear on their own.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple
import logging

from src.services.redis_service import RedisService

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

# Namespaces used by the managers
BLACKLIST = "blacklist"
SESSIONS = "sessions"
CSRF_TOKENS = "csrf"


def utcnow() -> datetime:
    """Default clock"""
    return datetime.now(timezone.utc)


class SecurityStore(ABC):
    """Namespaced record store with per-record expiry."""

    @abstractmethod
    async def get(self, namespace: str, key: str) -> Optional[Dict]:
        pass

    @abstractmethod
    async def put(self, namespace: str, key: str, record: Dict, expires_at: datetime) -> None:
        pass

    @abstractmethod
    async def delete(self, namespace: str, key: str) -> None:
        pass

    @abstractmethod
    async def items(self, namespace: str) -> List[Tuple[str, Dict]]:
        pass

    async def count(self, namespace: str) -> int:
        return len(await self.items(namespace))


class InMemorySecurityStore(SecurityStore):
    """
    Process-local store. Default for single-instance deployments and tests.

    Nothing is evicted here; the periodic sweep removes expired records.
    """

    def __init__(self):
        self._data: Dict[str, Dict[str, Dict]] = {}

    async def get(self, namespace: str, key: str) -> Optional[Dict]:
        record = self._data.get(namespace, {}).get(key)
        return dict(record) if record is not None else None

    async def put(self, namespace: str, key: str, record: Dict, expires_at: datetime) -> None:
        stored = dict(record)
        stored["expires_at"] = expires_at.isoformat()
        self._data.setdefault(namespace, {})[key] = stored

    async def delete(self, namespace: str, key: str) -> None:
        self._data.get(namespace, {}).pop(key, None)

    async def items(self, namespace: str) -> List[Tuple[str, Dict]]:
        return [(k, dict(v)) for k, v in self._data.get(namespace, {}).items()]


class RedisSecurityStore(SecurityStore):
    """
    Shared store for multi-instance deployments.

    Keys look like ``security:{namespace}:{key}``. The TTL is computed from
    ``expires_at`` against the store clock and is at least one second.
    """

    def __init__(self, redis_service: RedisService, prefix: str = "security", clock: Clock = utcnow):
        self.redis = redis_service
        self.prefix = prefix
        self._clock = clock

    def _key(self, namespace: str, key: str) -> str:
        return f"{self.prefix}:{namespace}:{key}"

    async def get(self, namespace: str, key: str) -> Optional[Dict]:
        record = await self.redis.get(self._key(namespace, key))
        return record if isinstance(record, dict) else None

    async def put(self, namespace: str, key: str, record: Dict, expires_at: datetime) -> None:
        stored = dict(record)
        stored["expires_at"] = expires_at.isoformat()
        ttl = max(1, int((expires_at - self._clock()).total_seconds()))
        await self.redis.set(self._key(namespace, key), stored, ttl=ttl)

    async def delete(self, namespace: str, key: str) -> None:
        await self.redis.delete(self._key(namespace, key))

    async def items(self, namespace: str) -> List[Tuple[str, Dict]]:
        full_keys = await self.redis.keys(self._key(namespace, "*"))
        if not full_keys:
            return []

        records = await self.redis.mget(full_keys)
        strip = len(self._key(namespace, ""))
        return [
            (full_key[strip:], record)
            for full_key, record in zip(full_keys, records)
            if isinstance(record, dict)
        ]


def is_expired(record: Dict, now: datetime) -> bool:
    """True if the record's expiry is strictly in the past"""
    return datetime.fromisoformat(record["expires_at"]) < now
