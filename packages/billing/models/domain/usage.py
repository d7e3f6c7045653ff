"""
Domain models for usage tracking, quotas and trials.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel

from common.core.config import settings
from common.providers.rate_limiter.interface import RateLimitDecision
from packages.billing.models.domain.enums import Plan, UsageSource
from packages.billing.periods import UTCDateTime


class QuotaDecision(BaseModel):
    """
    Result of an atomic quota check-and-consume.

    Carries enough detail for the caller to present actionable messaging.
    """

    allowed: bool
    operation_class: str
    plan: Plan
    limit: int
    used: int
    remaining: int
    reset_at: datetime
    period_key: str
    bypassed: bool = False

    @property
    def percentage_used(self) -> float:
        return (self.used / self.limit * 100) if self.limit else 0.0

    @property
    def warning_threshold_reached(self) -> bool:
        return self.percentage_used >= settings.quota_warning_threshold * 100

    def get_user_message(self) -> Optional[str]:
        """Get user-friendly message about quota status."""
        if not self.allowed:
            if self.limit == 0:
                return f"{self.operation_class} is not included in the {self.plan.value} plan. Upgrade to continue."
            return f"Monthly {self.operation_class} limit reached ({self.limit:,}). Upgrade to continue."

        if self.warning_threshold_reached and not self.bypassed:
            return f"You've used {self.percentage_used:.0f}% of your monthly {self.operation_class} quota ({self.used:,}/{self.limit:,})."

        return None


class TrialDecision(BaseModel):
    """Result of a trial allowance check."""

    allowed: bool
    feature_key: str
    used: int
    cap: int

    @property
    def remaining(self) -> int:
        return max(self.cap - self.used, 0)


class QuotaUsage(BaseModel):
    """Current-period usage for one operation class."""

    operation_class: str
    used: int
    limit: int
    remaining: int
    percentage_used: float


class UsageSummary(BaseModel):
    """Current-period usage across operation classes for one account."""

    account_id: int
    plan: Plan
    period_key: str
    reset_at: datetime
    items: List[QuotaUsage]


class UsageEvent(BaseModel):
    """
    Individual usage event record.

    Audit trail of granted usage; never consulted by enforcement.
    """

    id: int
    account_id: int
    operation_class: str
    source: UsageSource
    amount: int = 1
    period_key: Optional[str] = None
    event_metadata: dict
    created_at: UTCDateTime

    class Config:
        from_attributes = True


class UsageEventCreateModel(BaseModel):
    """Model for creating a usage event."""

    account_id: int
    operation_class: str
    source: UsageSource
    amount: int = 1
    period_key: Optional[str] = None
    event_metadata: dict = {}


class UsageGrant(BaseModel):
    """Everything the usage gate decided for one granted request."""

    source: UsageSource
    rate_limit: RateLimitDecision
    quota: Optional[QuotaDecision] = None
    trial: Optional[TrialDecision] = None


class UsageCounter(BaseModel):
    """Usage count for one (account, operation class, period)."""

    id: int
    account_id: int
    operation_class: str
    period_key: str
    count: int

    class Config:
        from_attributes = True


class TrialAllowance(BaseModel):
    """Non-resetting trial allowance for one (account, feature)."""

    id: int
    account_id: int
    feature_key: str
    used: int
    cap: int

    class Config:
        from_attributes = True
