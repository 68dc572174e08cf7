# tests/services/test_redis_service.py
"""
Unit tests for the Redis Service.

Uses mock-first approach to test without requiring a real Redis instance.
"""
import json
import pytest
from unittest.mock import AsyncMock, patch

from src.services.redis_service import RedisService, RedisConfig, create_redis_service
from src.core.exceptions import ConfigurationError, RedisServiceError, ServiceError


@pytest.fixture
def mock_config():
    """Create a test configuration"""
    return RedisConfig(
        url="redis://localhost:6379/0",
        decode_responses=True,
        socket_timeout=5.0
    )


@pytest.fixture
def mock_redis_client():
    """Create a mock Redis client"""
    client = AsyncMock()

    client.ping = AsyncMock(return_value=True)
    client.get = AsyncMock(return_value=None)
    client.set = AsyncMock(return_value=True)
    client.setex = AsyncMock(return_value=True)
    client.delete = AsyncMock(return_value=1)
    client.mget = AsyncMock(return_value=[None, None])
    client.info = AsyncMock(return_value={
        "redis_version": "7.0.0",
        "connected_clients": 5,
        "used_memory_human": "1.5M"
    })
    client.aclose = AsyncMock()

    return client


@pytest.fixture
async def redis_service(mock_config, mock_redis_client):
    """Create a Redis service with mocked client"""
    service = RedisService(mock_config)

    with patch('src.services.redis_service.redis.from_url', return_value=mock_redis_client):
        await service.initialize()

    return service


class TestRedisService:
    """Test Redis Service functionality"""

    async def test_initialization(self, mock_config, mock_redis_client):
        """Test service initialization"""
        service = RedisService(mock_config)

        assert service.config == mock_config
        assert not service.is_initialized

        with patch('src.services.redis_service.redis.from_url', return_value=mock_redis_client):
            await service.initialize()

        assert service.is_initialized
        mock_redis_client.ping.assert_called_once()

    async def test_initialization_from_env(self):
        """Test URL taken from REDIS_URL"""
        with patch.dict('os.environ', {'REDIS_URL': 'redis://standard:6379'}):
            service = RedisService()

        assert service.config.url == 'redis://standard:6379'

    async def test_no_redis_url(self):
        """A security store without a URL is a configuration error"""
        with patch.dict('os.environ', {}, clear=True):
            service = RedisService()

            with pytest.raises(ConfigurationError):
                await service.initialize()

        assert not service.is_initialized

    async def test_connection_failure(self, mock_config):
        """Connection failures surface as ServiceError"""
        service = RedisService(mock_config)

        failing_client = AsyncMock()
        failing_client.ping.side_effect = ConnectionError("Connection refused")

        with patch('src.services.redis_service.redis.from_url', return_value=failing_client):
            with pytest.raises(ServiceError):
                await service.initialize()

        assert not service.is_initialized

    async def test_get_json(self, redis_service, mock_redis_client):
        """Test getting JSON value with auto-deserialization"""
        mock_redis_client.get.return_value = '{"user_id": "u", "ip": "10.0.0.1"}'

        result = await redis_service.get("security:sessions:abc")

        assert result == {"user_id": "u", "ip": "10.0.0.1"}
        mock_redis_client.get.assert_called_once_with("security:sessions:abc")

    async def test_get_default(self, redis_service, mock_redis_client):
        """Test getting with default value"""
        mock_redis_client.get.return_value = None

        assert await redis_service.get("missing_key", default="fallback") == "fallback"

    async def test_get_failure_raises(self, redis_service, mock_redis_client):
        """Failures must not look like a missing key"""
        mock_redis_client.get.side_effect = ConnectionError("gone")

        with pytest.raises(RedisServiceError) as exc_info:
            await redis_service.get("security:blacklist:abc")

        assert exc_info.value.details["key"] == "security:blacklist:abc"
        assert exc_info.value.details["operation"] == "get"

    async def test_get_without_initialize_raises(self, mock_config):
        service = RedisService(mock_config)

        with pytest.raises(ServiceError):
            await service.get("anything")

    async def test_set_json_with_ttl(self, redis_service, mock_redis_client):
        """Dicts are stored as JSON with SETEX when a TTL is given"""
        data = {"expires_at": "2026-01-01T12:00:00+00:00"}

        await redis_service.set("security:csrf:t", data, ttl=3600)

        mock_redis_client.setex.assert_called_once_with("security:csrf:t", 3600, json.dumps(data))

    async def test_set_without_ttl(self, redis_service, mock_redis_client):
        await redis_service.set("key", "value")

        mock_redis_client.set.assert_called_once_with("key", "value")

    async def test_set_failure_raises(self, redis_service, mock_redis_client):
        mock_redis_client.setex.side_effect = TimeoutError("slow")

        with pytest.raises(RedisServiceError):
            await redis_service.set("key", {"a": 1}, ttl=10)

    async def test_delete(self, redis_service, mock_redis_client):
        mock_redis_client.delete.return_value = 2

        assert await redis_service.delete("key1", "key2") == 2
        mock_redis_client.delete.assert_called_once_with("key1", "key2")

    async def test_delete_nothing(self, redis_service, mock_redis_client):
        assert await redis_service.delete() == 0
        mock_redis_client.delete.assert_not_called()

    async def test_keys_uses_scan(self, redis_service, mock_redis_client):
        async def scan_iter(match=None):
            for key in ["security:csrf:a", b"security:csrf:b"]:
                yield key

        mock_redis_client.scan_iter = scan_iter

        assert await redis_service.keys("security:csrf:*") == ["security:csrf:a", "security:csrf:b"]

    async def test_mget_deserializes(self, redis_service, mock_redis_client):
        mock_redis_client.mget.return_value = ['{"a": 1}', None, "plain"]

        assert await redis_service.mget(["k1", "k2", "k3"]) == [{"a": 1}, None, "plain"]

    async def test_health_check(self, redis_service):
        health = await redis_service.health_check()

        assert health["healthy"] is True
        assert health["status"] == "connected"
        assert health["details"]["redis_version"] == "7.0.0"

    async def test_health_check_not_connected(self, mock_config):
        health = await RedisService(mock_config).health_check()

        assert health["healthy"] is False
        assert health["status"] == "not_connected"

    async def test_shutdown_closes_client(self, redis_service, mock_redis_client):
        await redis_service.shutdown()

        mock_redis_client.aclose.assert_awaited_once()
        assert not redis_service.is_initialized

    async def test_initialize_is_idempotent(self, redis_service, mock_redis_client):
        with patch('src.services.redis_service.redis.from_url') as from_url:
            await redis_service.initialize()

        from_url.assert_not_called()
        mock_redis_client.ping.assert_called_once()

    async def test_shutdown_twice_is_noop(self, redis_service, mock_redis_client):
        await redis_service.shutdown()
        await redis_service.shutdown()

        mock_redis_client.aclose.assert_awaited_once()

    async def test_shutdown_errors_are_logged_not_raised(self, redis_service, mock_redis_client):
        mock_redis_client.aclose.side_effect = ConnectionError("already gone")

        await redis_service.shutdown()

        assert not redis_service.is_initialized


async def test_create_redis_service(mock_redis_client):
    with patch('src.services.redis_service.redis.from_url', return_value=mock_redis_client):
        service = await create_redis_service("redis://localhost:6379/1")

    assert service.is_initialized
    assert service.config.url == "redis://localhost:6379/1"
