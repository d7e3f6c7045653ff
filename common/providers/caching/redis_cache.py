import json
from typing import Any, Optional
import redis.asyncio as redis

from common.core.config import settings
from .interface import CacheInterface
from common.core.otel_axiom_exporter import get_logger, trace_span

logger = get_logger(__name__)


class RedisCache(CacheInterface):
    """Redis-based cache. Values are stored as JSON strings."""

    def __init__(self):
        self.host = settings.redis_host
        self.port = settings.redis_port
        self.password = settings.redis_password
        self.db = settings.redis_db
        self._client: Optional[redis.Redis] = None
        self._connected = False

    @trace_span
    async def connect(self) -> bool:
        """Connect to Redis."""
        try:
            self._client = redis.Redis(
                host=self.host,
                port=self.port,
                password=self.password,
                db=self.db,
                decode_responses=True,
                socket_timeout=settings.store_timeout_seconds,
                socket_connect_timeout=settings.store_timeout_seconds,
            )
            await self._client.ping()
            self._connected = True
            logger.info("Redis cache provider connected")
            return True
        except Exception as e:
            logger.error(f"Failed to connect to Redis cache: {e}")
            self._connected = False
            return False

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._client:
            await self._client.aclose()
            self._connected = False
            logger.info("Redis cache provider disconnected")

    async def _ensure_connected(self) -> bool:
        if self._connected:
            return True
        return await self.connect()

    @trace_span
    async def get(self, key: str) -> Optional[Any]:
        if not await self._ensure_connected():
            return None

        try:
            value = await self._client.get(key)
            if value is None:
                return None
            return json.loads(value)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to deserialize cached value for key {key}: {e}")
            return None
        except Exception as e:
            logger.error(f"Error getting cache key {key}: {e}")
            return None

    @trace_span
    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        if not await self._ensure_connected():
            return False

        try:
            serialized_value = json.dumps(value, default=str)
            if ttl:
                success = await self._client.setex(key, ttl, serialized_value)
            else:
                success = await self._client.set(key, serialized_value)
            logger.debug(f"Cached key {key} with TTL {ttl}")
            return bool(success)
        except Exception as e:
            logger.error(f"Error setting cache key {key}: {e}")
            return False

    @trace_span
    async def delete(self, key: str) -> bool:
        if not await self._ensure_connected():
            return False

        try:
            deleted = await self._client.delete(key)
            if deleted:
                logger.debug(f"Deleted cache key {key}")
            return bool(deleted)
        except Exception as e:
            logger.error(f"Error deleting cache key {key}: {e}")
            return False

    @trace_span
    async def delete_pattern(self, pattern: str) -> int:
        """Delete keys matching a pattern using SCAN (never KEYS)."""
        if not await self._ensure_connected():
            return 0

        try:
            keys = [key async for key in self._client.scan_iter(match=pattern)]
            if not keys:
                return 0
            deleted_count = await self._client.delete(*keys)
            logger.info(f"Deleted {deleted_count} cache keys matching pattern {pattern}")
            return deleted_count
        except Exception as e:
            logger.error(f"Error deleting cache pattern {pattern}: {e}")
            return 0

    @trace_span
    async def exists(self, key: str) -> bool:
        if not await self._ensure_connected():
            return False

        try:
            return bool(await self._client.exists(key))
        except Exception as e:
            logger.error(f"Error checking if cache key {key} exists: {e}")
            return False

    async def ping(self) -> bool:
        if not await self._ensure_connected():
            return False
        try:
            return bool(await self._client.ping())
        except Exception as e:
            logger.warning(f"Redis cache ping failed: {e}")
            self._connected = False
            return False
