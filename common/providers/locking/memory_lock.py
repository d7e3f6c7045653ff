import time
import uuid
from typing import Dict, Optional, Tuple

from .interface import DistributedLockInterface


class MemoryLock(DistributedLockInterface):
    """Process-local lock for single-process runs and tests."""

    def __init__(self):
        # resource_key -> (token, expires_at)
        self._locks: Dict[str, Tuple[str, float]] = {}

    async def acquire_lock(
        self, resource_key: str, timeout_seconds: int = 30
    ) -> Optional[str]:
        held = self._locks.get(resource_key)
        if held is not None and held[1] > time.time():
            return None
        token = str(uuid.uuid4())
        self._locks[resource_key] = (token, time.time() + timeout_seconds)
        return token

    async def release_lock(self, resource_key: str, lock_token: str) -> bool:
        held = self._locks.get(resource_key)
        if held is None or held[0] != lock_token:
            return False
        del self._locks[resource_key]
        return True
