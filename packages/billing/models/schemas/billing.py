"""
API schemas for billing operations.

Request and response models for billing, admin and webhook endpoints.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from common.core.config import settings
from packages.billing.models.domain.enums import (
    LedgerOutcome,
    Plan,
    SubscriptionStatus,
    UsageSource,
)
from packages.billing.models.domain.events import OverrideTarget
from packages.billing.models.domain.subscription import Subscription
from packages.billing.models.domain.usage import QuotaDecision, TrialDecision, UsageGrant
from packages.billing.periods import UTCDateTime


# ============================================================================
# Usage Schemas
# ============================================================================


class ConsumeRequest(BaseModel):
    """Request to consume units of a metered operation."""

    amount: int = Field(default=1, ge=1, le=10_000)
    bucket: Optional[str] = Field(
        default=None, description="Rate limit bucket; defaults to the configured bucket"
    )


class QuotaDecisionResponse(BaseModel):
    """Quota decision plus the user-facing message."""

    allowed: bool
    operation_class: str
    plan: Plan
    limit: int
    used: int
    remaining: int
    reset_at: datetime
    period_key: str
    bypassed: bool = False
    percentage_used: float
    warning_threshold_reached: bool = Field(
        ..., description="True if usage is >= the warning threshold"
    )
    message: Optional[str] = None

    @classmethod
    def from_decision(cls, decision: QuotaDecision) -> "QuotaDecisionResponse":
        return cls(
            **decision.model_dump(),
            percentage_used=decision.percentage_used,
            warning_threshold_reached=decision.warning_threshold_reached,
            message=decision.get_user_message(),
        )


class TrialDecisionResponse(BaseModel):
    """Trial decision for a single unpaid use of a feature."""

    allowed: bool
    feature_key: str
    used: int
    cap: int
    remaining: int

    @classmethod
    def from_decision(cls, decision: TrialDecision) -> "TrialDecisionResponse":
        return cls(**decision.model_dump(), remaining=decision.remaining)


class UsageGrantResponse(BaseModel):
    """Which gate granted the request and what it decided."""

    source: UsageSource
    quota: Optional[QuotaDecisionResponse] = None
    trial: Optional[TrialDecisionResponse] = None

    @classmethod
    def from_grant(cls, grant: UsageGrant) -> "UsageGrantResponse":
        return cls(
            source=grant.source,
            quota=QuotaDecisionResponse.from_decision(grant.quota) if grant.quota else None,
            trial=TrialDecisionResponse.from_decision(grant.trial) if grant.trial else None,
        )


# ============================================================================
# Admin Schemas
# ============================================================================


class OverrideRequest(BaseModel):
    """Manual correction of a subscription, recorded as a ledgered event."""

    target_state: OverrideTarget
    justification: str = Field(..., min_length=1, max_length=2000)
    effective_at: Optional[UTCDateTime] = Field(
        default=None,
        description="Ordering timestamp of the override; defaults to now and may not be in the future",
    )


class GraceRequest(BaseModel):
    """Keep entitlement until grace_until, optionally on a given plan."""

    grace_until: UTCDateTime
    justification: str = Field(..., min_length=1, max_length=2000)
    plan: Optional[Plan] = None


class BlockRequest(BaseModel):
    """Deny one rate-limit identity in every bucket for a while."""

    ttl_seconds: int = Field(default_factory=lambda: settings.rate_limit_block_default_seconds, ge=1)
    reason: str = Field(..., min_length=1, max_length=500)


class SubscriptionResponse(BaseModel):
    """Aggregate state returned by the override endpoints."""

    account_id: int
    plan: Plan
    status: SubscriptionStatus
    effective_plan: Plan
    external_subscription_ref: Optional[str] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    grace_until: Optional[datetime] = None
    cancel_at_period_end: bool
    last_event_id: Optional[str] = None

    @classmethod
    def from_subscription(cls, subscription: Subscription) -> "SubscriptionResponse":
        return cls(
            **subscription.model_dump(include=set(cls.model_fields) - {"effective_plan"}),
            effective_plan=subscription.effective_plan(),
        )


# ============================================================================
# Webhook Schemas
# ============================================================================


class WebhookAckResponse(BaseModel):
    """Acknowledgement sent to the provider once the event is ledgered."""

    status: str = Field(..., description="'accepted' or 'duplicate'")
    event_id: str
    outcome: Optional[LedgerOutcome] = None
