"""
Read interface over subscription aggregates.

Read-only: every write goes through the reconciler.
"""

from datetime import datetime
from typing import Optional

from common.core.otel_axiom_exporter import trace_span, get_logger
from common.db.context import readonly
from common.db.retry import with_store_retry
from packages.billing.models.domain.enums import Plan
from packages.billing.models.domain.subscription import Subscription, SubscriptionView
from packages.billing.subscription_cache import SubscriptionReadCache

logger = get_logger(__name__)


class SubscriptionService:
    """Service for subscription reads and derived entitlement."""

    def __init__(self, read_cache: Optional[SubscriptionReadCache] = None):
        self.read_cache = read_cache or SubscriptionReadCache()

    @trace_span
    @with_store_retry
    async def get_subscription(self, account_id: int) -> Optional[Subscription]:
        return await self.read_cache.get(account_id)

    @trace_span
    @readonly
    async def get_subscription_view(
        self, account_id: int, now: Optional[datetime] = None
    ) -> SubscriptionView:
        subscription = await self.get_subscription(account_id)
        if subscription is None:
            return SubscriptionView.unsubscribed(account_id)
        return SubscriptionView.from_subscription(subscription, now)

    @trace_span
    async def get_effective_plan(
        self, account_id: int, now: Optional[datetime] = None
    ) -> Plan:
        subscription = await self.get_subscription(account_id)
        if subscription is None:
            return Plan.FREE
        return subscription.effective_plan(now)
