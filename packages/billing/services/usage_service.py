"""
Usage recorder: append-only audit of granted usage.
"""

from typing import List, Optional

from common.core.otel_axiom_exporter import trace_span, get_logger
from packages.billing.models.domain.enums import UsageSource
from packages.billing.models.domain.usage import UsageEvent, UsageEventCreateModel
from packages.billing.repositories.usage_event_repository import UsageEventRepository

logger = get_logger(__name__)


class UsageService:
    """Service for usage event tracking."""

    def __init__(self):
        self.usage_repo = UsageEventRepository()

    @trace_span
    async def record_usage(
        self,
        account_id: int,
        operation_class: str,
        source: UsageSource,
        amount: int = 1,
        period_key: Optional[str] = None,
        event_metadata: Optional[dict] = None,
    ) -> UsageEvent:
        """
        Record one grant.

        Args:
            account_id: Account the usage is attributed to
            operation_class: Operation class, or the feature key for trial grants
            source: Which gate granted it (quota, trial or bypass)
            amount: Units granted
            period_key: Quota period of the grant, if period-based
            event_metadata: Request context
        """
        event = await self.usage_repo.create(
            UsageEventCreateModel(
                account_id=account_id,
                operation_class=operation_class,
                source=source,
                amount=amount,
                period_key=period_key,
                event_metadata=event_metadata or {},
            )
        )

        log = logger.warning if source == UsageSource.BYPASS else logger.debug
        log(
            f"Recorded {amount} {operation_class} for account {account_id} via {source.value}",
            extra={
                "account_id": account_id,
                "operation_class": operation_class,
                "source": source.value,
                "usage_event_id": event.id,
            },
        )
        return event

    @trace_span
    async def get_recent_usage(
        self, account_id: int, source: Optional[UsageSource] = None, limit: int = 100
    ) -> List[UsageEvent]:
        return await self.usage_repo.get_by_account(account_id, source=source, limit=limit)
