import time
import fnmatch
from typing import Any, Optional, Dict
from dataclasses import dataclass

from .interface import CacheInterface
from common.core.otel_axiom_exporter import get_logger

logger = get_logger(__name__)


@dataclass
class CacheEntry:
    """Represents a cached entry with expiration."""

    value: Any
    expires_at: Optional[float] = None

    def is_expired(self) -> bool:
        if self.expires_at is None:
            return False
        return time.time() > self.expires_at


class MemoryCache(CacheInterface):
    """Process-local cache for local runs and tests."""

    def __init__(self):
        self._cache: Dict[str, CacheEntry] = {}

    def _live_entry(self, key: str) -> Optional[CacheEntry]:
        entry = self._cache.get(key)
        if entry is not None and entry.is_expired():
            del self._cache[key]
            return None
        return entry

    async def get(self, key: str) -> Optional[Any]:
        entry = self._live_entry(key)
        return entry.value if entry else None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        expires_at = time.time() + ttl if ttl else None
        self._cache[key] = CacheEntry(value=value, expires_at=expires_at)
        logger.debug(f"Cached key {key} with TTL {ttl}")
        return True

    async def delete(self, key: str) -> bool:
        if self._live_entry(key) is None:
            return False
        del self._cache[key]
        logger.debug(f"Deleted cache key {key}")
        return True

    async def delete_pattern(self, pattern: str) -> int:
        matching_keys = [key for key in self._cache if fnmatch.fnmatch(key, pattern)]
        for key in matching_keys:
            del self._cache[key]
        return len(matching_keys)

    async def exists(self, key: str) -> bool:
        return self._live_entry(key) is not None

    def clear(self) -> None:
        self._cache.clear()
