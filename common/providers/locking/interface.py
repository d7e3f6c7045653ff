from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional


class DistributedLockInterface(ABC):
    """Interface for distributed lock providers."""

    @abstractmethod
    async def acquire_lock(
        self, resource_key: str, timeout_seconds: int = 30
    ) -> Optional[str]:
        """
        Acquire a distributed lock for a resource.

        Args:
            resource_key: The resource to lock (e.g., "ledger_replay")
            timeout_seconds: Lock expiration time in seconds

        Returns:
            Lock token if acquired, None otherwise
        """
        pass

    @abstractmethod
    async def release_lock(self, resource_key: str, lock_token: str) -> bool:
        """
        Release a distributed lock.

        Returns:
            True if released, False if token doesn't match or lock doesn't exist
        """
        pass

    async def connect(self) -> bool:
        return True

    async def disconnect(self) -> None:
        return None

    @asynccontextmanager
    async def hold(
        self, resource_key: str, timeout_seconds: int = 30
    ) -> AsyncGenerator[bool, None]:
        """
        Try to hold a lock for the duration of the block.

        Yields True when this caller owns the lock, False when another holder
        has it. The lock is released on exit only if it was acquired.
        """
        token = await self.acquire_lock(resource_key, timeout_seconds)
        try:
            yield token is not None
        finally:
            if token is not None:
                await self.release_lock(resource_key, token)
