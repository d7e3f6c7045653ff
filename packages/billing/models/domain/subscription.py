"""
Domain models for subscriptions.
"""

from datetime import datetime, timedelta
from typing import Optional
from pydantic import BaseModel

from common.core.config import settings
from packages.billing.models.domain.enums import Plan, SubscriptionStatus
from packages.billing.periods import UTCDateTime, utcnow


class SubscriptionState(BaseModel):
    """
    The reconciler-owned fields of the aggregate.

    Transitions map one SubscriptionState to the next; the repository
    persists it under the ordering guard.
    """

    plan: Plan = Plan.FREE
    status: SubscriptionStatus = SubscriptionStatus.INACTIVE

    external_subscription_ref: Optional[str] = None
    external_customer_ref: Optional[str] = None

    current_period_start: Optional[UTCDateTime] = None
    current_period_end: Optional[UTCDateTime] = None
    grace_until: Optional[UTCDateTime] = None
    cancel_at_period_end: bool = False
    canceled_at: Optional[UTCDateTime] = None

    class Config:
        from_attributes = True


class Subscription(SubscriptionState):
    """
    Subscription aggregate domain model.

    One per account. Entitlement is derived at read time from status and
    period fields; nothing else demotes the stored plan.
    """

    id: int
    account_id: int

    last_event_sequence: Optional[int] = None
    last_event_id: Optional[str] = None

    created_at: UTCDateTime
    updated_at: UTCDateTime

    def to_state(self) -> SubscriptionState:
        return SubscriptionState.model_validate(
            self.model_dump(include=set(SubscriptionState.model_fields))
        )

    def effective_plan(self, now: Optional[datetime] = None) -> Plan:
        """
        Plan the account is entitled to right now.

        active/trialing keep the plan until period end plus the tolerance
        (exactly period end when canceling at period end). past_due keeps it
        until the later of grace_until and period end plus the tolerance.
        Everything else is free.
        """
        now = now or utcnow()
        tolerance = timedelta(days=settings.entitlement_grace_tolerance_days)

        if self.status.is_paying():
            if self.current_period_end is None:
                return self.plan
            entitled_until = (
                self.current_period_end
                if self.cancel_at_period_end
                else self.current_period_end + tolerance
            )
            return self.plan if now < entitled_until else Plan.FREE

        if self.status == SubscriptionStatus.PAST_DUE:
            windows = [self.grace_until]
            if self.current_period_end is not None:
                windows.append(self.current_period_end + tolerance)
            if any(end is not None and now < end for end in windows):
                return self.plan
            return Plan.FREE

        return Plan.FREE

    def has_access(self, now: Optional[datetime] = None) -> bool:
        """Check if the account is entitled to a paid plan."""
        return self.effective_plan(now) != Plan.FREE

    def tools_entitlement(self, now: Optional[datetime] = None) -> bool:
        return self.effective_plan(now).has_tools_entitlement()


class SubscriptionView(BaseModel):
    """Read-only subscription status for UI/status endpoints."""

    account_id: int
    plan: Plan
    status: SubscriptionStatus
    effective_plan: Plan
    current_period_end: Optional[datetime] = None
    grace_until: Optional[datetime] = None
    cancel_at_period_end: bool = False
    tools_entitlement: bool
    has_access: bool

    @classmethod
    def from_subscription(
        cls, subscription: Subscription, now: Optional[datetime] = None
    ) -> "SubscriptionView":
        effective_plan = subscription.effective_plan(now)
        return cls(
            account_id=subscription.account_id,
            plan=subscription.plan,
            status=subscription.status,
            effective_plan=effective_plan,
            current_period_end=subscription.current_period_end,
            grace_until=subscription.grace_until,
            cancel_at_period_end=subscription.cancel_at_period_end,
            tools_entitlement=effective_plan.has_tools_entitlement(),
            has_access=effective_plan != Plan.FREE,
        )

    @classmethod
    def unsubscribed(cls, account_id: int) -> "SubscriptionView":
        """View for an account with no aggregate yet."""
        return cls(
            account_id=account_id,
            plan=Plan.FREE,
            status=SubscriptionStatus.INACTIVE,
            effective_plan=Plan.FREE,
            tools_entitlement=False,
            has_access=False,
        )
