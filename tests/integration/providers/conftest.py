import pytest
from unittest.mock import patch

from common.core.config import settings
from common.providers.locking.redis_lock import RedisLock
from common.core.constants import RateLimiterBackend
from common.providers.rate_limiter.factory import build_rate_limiter


@pytest.fixture
async def redis_lock():
    """
    Provide a Redis lock for integration tests.
    Requires Redis to be running (e.g., via docker-compose).
    """
    # Use DB 1 for tests
    with patch.object(settings, "redis_db", 1):
        lock = RedisLock()

        if not await lock.connect():
            pytest.skip("Redis is not available for integration tests")

        yield lock

        await lock.disconnect()


@pytest.fixture
async def redis_rate_limiter():
    """Provide a Redis-backed rate limiter, skipping when Redis is down."""
    with patch.object(settings, "redis_db", 1), patch.object(
        settings, "rate_limiter_backend", RateLimiterBackend.REDIS
    ):
        limiter = build_rate_limiter()

        if not await limiter.ping():
            pytest.skip("Redis is not available for integration tests")

        yield limiter
