from typing import Optional

from common.core.config import settings
from common.core.constants import CacheBackend
from common.core.otel_axiom_exporter import get_logger

from .interface import DistributedLockInterface
from .memory_lock import MemoryLock
from .redis_lock import RedisLock

logger = get_logger(__name__)

# Global instance
_lock_provider: Optional[DistributedLockInterface] = None


def get_lock_provider() -> DistributedLockInterface:
    """
    Get the configured distributed lock provider.

    Follows the cache backend: a memory cache implies a single process,
    where an in-process lock is sufficient.
    """
    global _lock_provider

    if _lock_provider is None:
        if settings.cache_backend == CacheBackend.MEMORY:
            _lock_provider = MemoryLock()
        else:
            _lock_provider = RedisLock()
        logger.info(f"Initialized {type(_lock_provider).__name__} lock provider")

    return _lock_provider


def set_lock_provider(provider: Optional[DistributedLockInterface]) -> None:
    global _lock_provider
    _lock_provider = provider
