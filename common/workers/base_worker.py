import asyncio
from abc import ABC, abstractmethod
from typing import Optional
from uuid import uuid4

from common.core.otel_axiom_exporter import get_logger
from common.providers.locking.interface import DistributedLockInterface

logger = get_logger(__name__)


class BaseWorker(ABC):
    """
    Base class for periodic background workers.

    Each tick runs process() under a distributed lock named after the
    worker, so with several replicas only one does the work per tick.
    """

    def __init__(
        self,
        worker_name: str,
        interval_seconds: float,
        lock_provider: DistributedLockInterface,
        lock_ttl_seconds: int = 300,
        worker_id: Optional[str] = None,
    ):
        self.worker_name = worker_name
        self.worker_id = worker_id or f"{worker_name}_worker_{uuid4()}"
        self.interval_seconds = interval_seconds
        self.lock_provider = lock_provider
        self.lock_ttl_seconds = lock_ttl_seconds
        self.running = False
        self._stop_event = asyncio.Event()

    async def setup(self):
        """Initialize worker dependencies."""
        try:
            await self.lock_provider.connect()
            logger.info(f"Worker {self.worker_id} setup completed")
        except Exception as e:
            logger.error(f"Error setting up worker {self.worker_id}: {e}")
            raise

    async def cleanup(self):
        """Cleanup worker resources."""
        try:
            await self.lock_provider.disconnect()
            logger.info(f"Worker {self.worker_id} cleanup completed")
        except Exception as e:
            logger.error(f"Error cleaning up worker {self.worker_id}: {e}")

    async def run_once(self) -> bool:
        """
        One tick. Returns False when another instance held the lock.

        Errors from process() are logged and the worker carries on with the
        next tick.
        """
        async with self.lock_provider.hold(
            f"worker:{self.worker_name}", self.lock_ttl_seconds
        ) as acquired:
            if not acquired:
                logger.debug(
                    f"Worker {self.worker_id} skipped tick - lock held elsewhere"
                )
                return False
            try:
                await self.process()
            except Exception as e:
                logger.error(
                    f"Error in worker {self.worker_id} tick: {e}", exc_info=True
                )
            return True

    async def start(self):
        """Run ticks every interval_seconds until stopped."""
        if self.running:
            logger.warning(f"Worker {self.worker_id} is already running")
            return

        self.running = True
        self._stop_event.clear()
        logger.info(
            f"Starting worker {self.worker_id} (every {self.interval_seconds}s)"
        )

        try:
            await self.setup()
            while self.running:
                await self.run_once()
                try:
                    await asyncio.wait_for(
                        self._stop_event.wait(), timeout=self.interval_seconds
                    )
                except asyncio.TimeoutError:
                    pass
        finally:
            self.running = False
            await self.cleanup()

    async def stop(self):
        """Stop the worker."""
        self.running = False
        self._stop_event.set()
        logger.info(f"Stopping worker {self.worker_id}")

    @abstractmethod
    async def process(self):
        """Do one unit of periodic work. Must be implemented by subclasses."""
        pass
