"""
Domain models for Stripe webhook payloads.

Only the fields the reconciler reads are modelled; everything else in the
provider objects is ignored.
"""

from typing import Any, List, Optional
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field


class StripeSubscriptionStatus(str, Enum):
    """Stripe subscription status values."""

    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    UNPAID = "unpaid"
    PAUSED = "paused"


class StripeMetadata(BaseModel):
    """Stripe metadata (we store account_id and optionally plan here)."""

    model_config = ConfigDict(extra="allow")

    account_id: Optional[str] = None
    plan: Optional[str] = None


class StripePrice(BaseModel):
    id: str


class StripeSubscriptionItem(BaseModel):
    price: Optional[StripePrice] = None
    # Newer API versions carry the period on the item instead of the subscription
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None


class StripeSubscriptionItems(BaseModel):
    data: List[StripeSubscriptionItem] = Field(default_factory=list)


class StripeSubscriptionData(BaseModel):
    """Stripe subscription object."""

    id: str
    customer: str
    status: StripeSubscriptionStatus
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None
    cancel_at_period_end: bool = False
    canceled_at: Optional[int] = None
    ended_at: Optional[int] = None
    trial_end: Optional[int] = None
    items: StripeSubscriptionItems = Field(default_factory=StripeSubscriptionItems)
    metadata: StripeMetadata = Field(default_factory=StripeMetadata)

    def period(self) -> tuple[Optional[int], Optional[int]]:
        """(start, end) from the subscription, falling back to its first item."""
        if self.current_period_end is not None:
            return self.current_period_start, self.current_period_end
        for item in self.items.data:
            if item.current_period_end is not None:
                return item.current_period_start, item.current_period_end
        return None, None

    def price_ids(self) -> List[str]:
        return [item.price.id for item in self.items.data if item.price]


class StripePeriod(BaseModel):
    start: int
    end: int


class StripeInvoiceLineItem(BaseModel):
    period: Optional[StripePeriod] = None


class StripeInvoiceLines(BaseModel):
    data: List[StripeInvoiceLineItem] = Field(default_factory=list)


class StripeInvoiceData(BaseModel):
    """Stripe invoice object."""

    id: str
    customer: Optional[str] = None
    subscription: Optional[str] = None
    status: Optional[str] = None
    amount_due: Optional[int] = None
    amount_paid: Optional[int] = None
    lines: StripeInvoiceLines = Field(default_factory=StripeInvoiceLines)
    metadata: StripeMetadata = Field(default_factory=StripeMetadata)

    def service_period(self) -> Optional[StripePeriod]:
        """The latest line period, i.e. the billing window this invoice pays for."""
        periods = [line.period for line in self.lines.data if line.period]
        if not periods:
            return None
        return max(periods, key=lambda period: period.end)


class StripeCheckoutSessionData(BaseModel):
    """Stripe checkout session object."""

    id: str
    customer: Optional[str] = None
    subscription: Optional[str] = None
    client_reference_id: Optional[str] = None
    metadata: StripeMetadata = Field(default_factory=StripeMetadata)


class StripeEventData(BaseModel):
    """Stripe event data wrapper."""

    object: dict[str, Any]  # The actual object (subscription, invoice, ...)


class StripeWebhookPayload(BaseModel):
    """Complete Stripe webhook payload."""

    id: str
    type: str
    data: StripeEventData
    created: int
    livemode: bool = False
