import pytest
from unittest.mock import AsyncMock, patch
import redis.asyncio as redis

from common.providers.locking.memory_lock import MemoryLock
from common.providers.locking.redis_lock import RedisLock


class TestRedisLock:
    """Unit tests for Redis distributed lock."""

    @pytest.fixture
    def redis_lock(self):
        return RedisLock()

    @pytest.fixture
    def mock_redis_client(self):
        return AsyncMock(spec=redis.Redis)

    async def test_acquire_lock_success(self, redis_lock, mock_redis_client):
        """Test successful lock acquisition."""
        redis_lock._client = mock_redis_client
        redis_lock._connected = True
        mock_redis_client.set = AsyncMock(return_value=True)

        token = await redis_lock.acquire_lock("ledger_replay", 30)

        assert token is not None
        assert len(token) == 36  # UUID length
        mock_redis_client.set.assert_called_once_with(
            "lock:ledger_replay", token, nx=True, ex=30
        )

    async def test_acquire_lock_already_locked(self, redis_lock, mock_redis_client):
        redis_lock._client = mock_redis_client
        redis_lock._connected = True
        mock_redis_client.set = AsyncMock(return_value=False)

        assert await redis_lock.acquire_lock("ledger_replay", 30) is None

    async def test_release_lock_token_mismatch(self, redis_lock, mock_redis_client):
        redis_lock._client = mock_redis_client
        redis_lock._connected = True
        mock_redis_client.eval = AsyncMock(return_value=0)

        assert await redis_lock.release_lock("ledger_replay", "wrong_token") is False

    async def test_unreachable_redis_never_grants_lock(self, redis_lock):
        with patch.object(redis_lock, "connect", AsyncMock(return_value=False)):
            assert await redis_lock.acquire_lock("ledger_replay", 30) is None

    async def test_hold_releases_on_exit(self, redis_lock, mock_redis_client):
        redis_lock._client = mock_redis_client
        redis_lock._connected = True
        mock_redis_client.set = AsyncMock(return_value=True)
        mock_redis_client.eval = AsyncMock(return_value=1)

        async with redis_lock.hold("ledger_replay", 30) as acquired:
            assert acquired is True

        mock_redis_client.eval.assert_called_once()


class TestMemoryLock:
    async def test_second_holder_is_refused(self):
        lock = MemoryLock()

        async with lock.hold("worker:ledger_replay") as first:
            async with lock.hold("worker:ledger_replay") as second:
                assert first is True
                assert second is False

        async with lock.hold("worker:ledger_replay") as third:
            assert third is True

    async def test_expired_lock_can_be_taken(self, monkeypatch):
        lock = MemoryLock()
        monkeypatch.setattr("common.providers.locking.memory_lock.time.time", lambda: 100.0)
        await lock.acquire_lock("resource", timeout_seconds=5)

        monkeypatch.setattr("common.providers.locking.memory_lock.time.time", lambda: 106.0)

        assert await lock.acquire_lock("resource") is not None

    async def test_release_requires_token(self):
        lock = MemoryLock()
        token = await lock.acquire_lock("resource")

        assert await lock.release_lock("resource", "not-the-token") is False
        assert await lock.release_lock("resource", token) is True
