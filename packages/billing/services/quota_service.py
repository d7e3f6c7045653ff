"""
Service for quota enforcement.

check_and_consume() is the only path that changes a usage counter. The
check and the increment are one conditional UPDATE, so concurrent requests
near the limit cannot both pass.
"""

from datetime import datetime
from typing import Optional

from common.core.exceptions import ValidationError
from common.core.otel_axiom_exporter import trace_span, get_logger
from common.db.context import readonly
from common.db.retry import run_with_store_retry
from common.db.scoped import transaction
from packages.billing.models.domain.enums import OperationClass, Plan
from packages.billing.models.domain.usage import QuotaDecision, QuotaUsage, UsageSummary
from packages.billing.periods import next_period_start, period_key_for, utcnow
from packages.billing.repositories.usage_counter_repository import UsageCounterRepository
from packages.billing.services.subscription_service import SubscriptionService

logger = get_logger(__name__)


class QuotaService:
    """Service for per-period quota enforcement."""

    def __init__(self, subscription_service: Optional[SubscriptionService] = None):
        self.counter_repo = UsageCounterRepository()
        self.subscription_service = subscription_service or SubscriptionService()

    @staticmethod
    def get_limit(plan: Plan, operation_class: str) -> int:
        """Unknown operation classes are blocked."""
        return plan.get_quota_limits().get(operation_class, 0)

    async def _consume(
        self,
        account_id: int,
        operation_class: str,
        period_key: str,
        amount: int,
        limit: int,
    ) -> tuple[Optional[int], int]:
        """(new count or None if denied, count observed on denial)."""
        async with transaction():
            used = await self.counter_repo.try_increment(
                account_id, operation_class, period_key, amount, limit
            )
            if used is not None:
                return used, used

            current = await self.counter_repo.get_count(
                account_id, operation_class, period_key
            )
            if current is None:
                # First use this period: create the row, then retry the same guard
                await self.counter_repo.ensure_counter(
                    account_id, operation_class, period_key
                )
                used = await self.counter_repo.try_increment(
                    account_id, operation_class, period_key, amount, limit
                )
                return used, used if used is not None else 0

            return None, current

    @trace_span
    async def check_and_consume(
        self,
        account_id: int,
        operation_class: str,
        amount: int = 1,
        bypass: bool = False,
        now: Optional[datetime] = None,
    ) -> QuotaDecision:
        """
        Consume amount units of operation_class for the current period.

        A denial is returned, not raised: allowed=False with reset_at at the
        start of the next period. With bypass the counter is not touched;
        the caller attributes the usage through the usage recorder.
        """
        if amount < 1:
            raise ValidationError("amount must be at least 1")

        now = now or utcnow()
        period_key = period_key_for(now)
        reset_at = next_period_start(now)

        plan = await self.subscription_service.get_effective_plan(account_id, now)
        limit = self.get_limit(plan, operation_class)

        if bypass:
            current = await self.counter_repo.get_count(
                account_id, operation_class, period_key
            )
            logger.warning(
                f"Quota bypass for account {account_id} on {operation_class}",
                extra={"account_id": account_id, "operation_class": operation_class},
            )
            return QuotaDecision(
                allowed=True,
                operation_class=operation_class,
                plan=plan,
                limit=limit,
                used=current or 0,
                remaining=max(limit - (current or 0), 0),
                reset_at=reset_at,
                period_key=period_key,
                bypassed=True,
            )

        used, observed = await run_with_store_retry(
            lambda: self._consume(account_id, operation_class, period_key, amount, limit),
            "quota.check_and_consume",
        )
        allowed = used is not None

        decision = QuotaDecision(
            allowed=allowed,
            operation_class=operation_class,
            plan=plan,
            limit=limit,
            used=observed,
            remaining=max(limit - observed, 0),
            reset_at=reset_at,
            period_key=period_key,
        )

        if not allowed:
            logger.info(
                f"Account {account_id} exceeded {operation_class} quota",
                extra={
                    "account_id": account_id,
                    "operation_class": operation_class,
                    "used": observed,
                    "limit": limit,
                    "period_key": period_key,
                },
            )
        elif decision.warning_threshold_reached:
            logger.info(
                f"Account {account_id} at {decision.percentage_used:.0f}% of {operation_class} quota",
                extra={"account_id": account_id, "operation_class": operation_class},
            )

        return decision

    @trace_span
    @readonly
    async def get_usage_summary(
        self, account_id: int, now: Optional[datetime] = None
    ) -> UsageSummary:
        """Current-period usage for every metered operation class."""
        now = now or utcnow()
        period_key = period_key_for(now)
        plan = await self.subscription_service.get_effective_plan(account_id, now)
        counts = await self.counter_repo.get_counts_for_period(account_id, period_key)

        items = []
        for operation_class in OperationClass:
            limit = self.get_limit(plan, operation_class.value)
            used = counts.get(operation_class.value, 0)
            items.append(
                QuotaUsage(
                    operation_class=operation_class.value,
                    used=used,
                    limit=limit,
                    remaining=max(limit - used, 0),
                    percentage_used=(used / limit * 100) if limit else 0.0,
                )
            )

        return UsageSummary(
            account_id=account_id,
            plan=plan,
            period_key=period_key,
            reset_at=next_period_start(now),
            items=items,
        )
