import pytest
from unittest.mock import AsyncMock, patch
from pydantic import BaseModel
from testcontainers.redis import RedisContainer

from common.core.config import settings
from common.providers.caching import MemoryCache, cache, set_cache_provider
from common.providers.caching.redis_cache import RedisCache


class SampleModel(BaseModel):
    id: int
    name: str


class SampleRepository:
    def __init__(self):
        self.call_count = 0

    @cache(SampleModel, ttl=60)
    async def get_model(self, id: int) -> SampleModel:
        self.call_count += 1
        return SampleModel(id=id, name=f"test_{id}")

    @cache(SampleModel, ttl=60, key_generator=lambda id: f"sample:{id}")
    async def get_keyed(self, id: int) -> SampleModel:
        self.call_count += 1
        return SampleModel(id=id, name=f"keyed_{id}")

    @cache(SampleModel, ttl=60)
    async def get_missing(self, id: int):
        self.call_count += 1
        return None


class TestCacheDecorator:
    async def test_basic_cache_functionality(self, memory_providers):
        """Second call with the same args is served from the cache."""
        repo = SampleRepository()

        result1 = await repo.get_model(1)
        result2 = await repo.get_model(1)
        result3 = await repo.get_model(2)

        assert result1 == result2 == SampleModel(id=1, name="test_1")
        assert result3.id == 2
        assert repo.call_count == 2

    async def test_key_generator_controls_key(self, memory_providers):
        repo = SampleRepository()

        await repo.get_keyed(7)

        assert await memory_providers["cache"].get("sample:7") == {
            "id": 7,
            "name": "keyed_7",
        }

    async def test_delete_forces_reload(self, memory_providers):
        repo = SampleRepository()
        await repo.get_keyed(7)

        await memory_providers["cache"].delete("sample:7")
        await repo.get_keyed(7)

        assert repo.call_count == 2

    async def test_none_is_not_cached(self, memory_providers):
        repo = SampleRepository()

        await repo.get_missing(1)
        await repo.get_missing(1)

        assert repo.call_count == 2

    async def test_backend_failure_falls_through(self):
        broken = MemoryCache()
        broken.get = AsyncMock(side_effect=ConnectionError("down"))
        broken.set = AsyncMock(side_effect=ConnectionError("down"))
        set_cache_provider(broken)
        repo = SampleRepository()

        result = await repo.get_model(3)

        assert result.name == "test_3"
        assert repo.call_count == 1


class TestMemoryCache:
    async def test_ttl_expiry(self, monkeypatch):
        cache_provider = MemoryCache()
        monkeypatch.setattr("common.providers.caching.memory_cache.time.time", lambda: 1000.0)
        await cache_provider.set("k", {"v": 1}, ttl=10)

        monkeypatch.setattr("common.providers.caching.memory_cache.time.time", lambda: 1011.0)

        assert await cache_provider.get("k") is None
        assert await cache_provider.exists("k") is False

    async def test_delete_pattern(self):
        cache_provider = MemoryCache()
        await cache_provider.set("account:1:subscription", {})
        await cache_provider.set("account:2:subscription", {})
        await cache_provider.set("other", {})

        deleted = await cache_provider.delete_pattern("account:*")

        assert deleted == 2
        assert await cache_provider.exists("other")


class TestRedisCache:
    @pytest.fixture(autouse=True)
    def setup_redis(self):
        """Set up Redis container for all tests in this class."""
        with RedisContainer() as redis:
            with patch.object(settings, "redis_host", redis.get_container_host_ip()):
                with patch.object(settings, "redis_port", redis.get_exposed_port(6379)):
                    with patch.object(settings, "redis_password", None):
                        provider = RedisCache()
                        set_cache_provider(provider)
                        yield provider

    async def test_decorator_round_trips_through_redis(self):
        repo = SampleRepository()

        result1 = await repo.get_keyed(7)
        result2 = await repo.get_keyed(7)

        assert result1 == result2 == SampleModel(id=7, name="keyed_7")
        assert repo.call_count == 1

    async def test_delete_pattern_uses_scan(self, setup_redis):
        await setup_redis.set("account:1:subscription", {"plan": "tier1"}, ttl=60)
        await setup_redis.set("account:2:subscription", {"plan": "tier2"}, ttl=60)
        await setup_redis.set("other", {"plan": "free"}, ttl=60)

        deleted = await setup_redis.delete_pattern("account:*")

        assert deleted == 2
        assert await setup_redis.exists("other")
        await setup_redis.disconnect()
