from typing import Optional

from common.core.config import settings
from common.core.otel_axiom_exporter import trace_span, get_logger
from common.providers.locking.factory import get_lock_provider
from common.workers.base_worker import BaseWorker
from packages.billing.models.domain.ledger import ReplayResult
from packages.billing.services.replay_service import ReplayService

logger = get_logger(__name__)


class LedgerReplayWorker(BaseWorker):
    """Periodically re-dispatches ledger rows that were never applied."""

    def __init__(self, replay_service: Optional[ReplayService] = None):
        super().__init__(
            "ledger_replay",
            interval_seconds=settings.ledger_replay_interval_seconds,
            lock_provider=get_lock_provider(),
            lock_ttl_seconds=settings.ledger_replay_lock_ttl_seconds,
        )
        self.replay_service = replay_service or ReplayService()
        self.last_result: Optional[ReplayResult] = None

    @trace_span
    async def process(self):
        self.last_result = await self.replay_service.replay_pending()
        if self.last_result.exhausted:
            logger.error(
                f"{self.last_result.exhausted} ledger rows exhausted their replay attempts",
                extra={"exhausted": self.last_result.exhausted},
            )
