# src/services/redis_service.py
"""
Redis backend for the shared security store.

Async wrapper around Redis with:
- Configuration from REDIS_URL (or an explicit config)
- Connection check on initialize, pool closed on shutdown
- Automatic JSON serialization/deserialization
- TTL support
- Health checks

Unlike a cache, a security store must not silently lose writes, so
failed operations raise RedisServiceError instead of returning defaults.
"""
import os
import json
import redis.asyncio as redis
from typing import Optional, Dict, Any, List
from dataclasses import dataclass
import logging

from src.core.exceptions import (
    SecurityServiceError,
    config_error,
    redis_error,
)

logger = logging.getLogger(__name__)


@dataclass
class RedisConfig:
    """Connection settings for the security store"""
    url: Optional[str] = None
    decode_responses: bool = True
    socket_timeout: float = 5.0
    max_connections: int = 10
    retry_on_timeout: bool = True
    health_check_interval: int = 30


class RedisService:
    """
    Async Redis client used by RedisSecurityStore.

    Call ``initialize()`` once before use; every operation goes through
    ``client``, which refuses to run on an unconnected service.
    """

    service_name = "RedisService"

    def __init__(self, config: Optional[RedisConfig] = None):
        """
        Args:
            config: Redis configuration. If not provided, uses REDIS_URL.
        """
        self.config = config or RedisConfig(url=os.environ.get("REDIS_URL"))
        self._client: Optional[redis.Redis] = None

    @property
    def is_initialized(self) -> bool:
        return self._client is not None

    @property
    def client(self) -> redis.Redis:
        """
        The connected client.

        Raises:
            SecurityServiceError: If initialize() has not succeeded
        """
        if self._client is None:
            raise SecurityServiceError(
                "Redis security store is not connected. Call initialize() first.",
                service_name=self.service_name,
            )
        return self._client

    async def initialize(self) -> None:
        """
        Connect and ping Redis. Safe to call more than once.

        Raises:
            SecurityConfigurationError: No URL configured
            SecurityServiceError: Redis unreachable
        """
        if self._client is not None:
            return

        if not self.config.url:
            raise config_error("No Redis URL configured. Set REDIS_URL.", component=self.service_name)

        logger.info("Connecting security store to Redis...")
        client = redis.from_url(
            self.config.url,
            decode_responses=self.config.decode_responses,
            socket_timeout=self.config.socket_timeout,
            max_connections=self.config.max_connections,
            retry_on_timeout=self.config.retry_on_timeout,
            health_check_interval=self.config.health_check_interval
        )

        try:
            await client.ping()
        except Exception as e:
            logger.error("Redis connection failed", exc_info=True)
            raise SecurityServiceError(
                "Failed to connect the security store to Redis",
                service_name=self.service_name,
                operation="initialize",
                details={"original_error": str(e), "error_type": type(e).__name__},
            ) from e

        self._client = client
        logger.info("Redis connection successful")

    async def get(self, key: str, default: Any = None) -> Any:
        """
        Get a value from Redis, deserializing JSON.

        Args:
            key: The key to retrieve
            default: Default value if key doesn't exist

        Returns:
            The stored value or default
        """
        try:
            value = await self.client.get(key)
        except Exception as e:
            raise redis_error(f"Redis get failed: {e}", key=key, operation="get") from e

        if value is None:
            return default

        if isinstance(value, str):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass

        return value

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """
        Set a value in Redis.

        Args:
            key: The key to set
            value: The value to store (non-strings are stored as JSON)
            ttl: Time to live in seconds
        """
        if not isinstance(value, (str, bytes)):
            value = json.dumps(value)

        try:
            if ttl:
                await self.client.setex(key, ttl, value)
            else:
                await self.client.set(key, value)
        except Exception as e:
            raise redis_error(f"Redis set failed: {e}", key=key, operation="set") from e

    async def delete(self, *keys: str) -> int:
        """
        Delete one or more keys.

        Returns:
            Number of keys deleted
        """
        if not keys:
            return 0

        try:
            return await self.client.delete(*keys)
        except Exception as e:
            raise redis_error(f"Redis delete failed: {e}", operation="delete") from e

    async def keys(self, pattern: str = "*") -> List[str]:
        """
        Get keys matching pattern (SCAN based, does not block the server).

        Args:
            pattern: Pattern to match (default: "*" for all)
        """
        try:
            found = [k async for k in self.client.scan_iter(match=pattern)]
        except Exception as e:
            raise redis_error(f"Redis scan failed: {e}", key=pattern, operation="keys") from e

        return [k.decode() if isinstance(k, bytes) else k for k in found]

    async def mget(self, keys: List[str]) -> List[Any]:
        """
        Get multiple values at once.

        Returns:
            List of values (None for missing keys)
        """
        if not keys:
            return []

        try:
            values = await self.client.mget(keys)
        except Exception as e:
            raise redis_error(f"Redis mget failed: {e}", operation="mget") from e

        result = []
        for value in values:
            if isinstance(value, str):
                try:
                    result.append(json.loads(value))
                except json.JSONDecodeError:
                    result.append(value)
            else:
                result.append(value)
        return result

    async def health_check(self) -> Dict[str, Any]:
        """
        Check Redis service health.

        Returns:
            Health status including connection info
        """
        if self._client is None:
            return {
                "healthy": False,
                "status": "not_connected",
                "details": {"error": "Client not initialized"}
            }

        try:
            await self._client.ping()
            info = await self._client.info()

            return {
                "healthy": True,
                "status": "connected",
                "details": {
                    "redis_version": info.get("redis_version", "unknown"),
                    "connected_clients": info.get("connected_clients", 0),
                    "used_memory_human": info.get("used_memory_human", "unknown")
                }
            }

        except Exception as e:
            return {
                "healthy": False,
                "status": "error",
                "details": {"error": str(e)}
            }

    async def shutdown(self) -> None:
        """Close the connection pool. Best effort: errors are logged."""
        if self._client is None:
            return

        client, self._client = self._client, None
        try:
            await client.aclose()
            logger.info("Redis security store disconnected")
        except Exception as e:
            logger.warning(f"Error closing Redis client: {e}")


async def create_redis_service(
    url: Optional[str] = None,
    **kwargs
) -> RedisService:
    """
    Create and initialize a Redis service instance.

    Args:
        url: Redis URL (uses REDIS_URL if not provided)
        **kwargs: Additional config parameters

    Returns:
        Initialized RedisService
    """
    config = RedisConfig(
        url=url or os.environ.get("REDIS_URL"),
        **kwargs
    )
    service = RedisService(config)
    await service.initialize()
    return service
