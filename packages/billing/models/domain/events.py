"""
Typed event envelope handed from the ingestor to the reconciler.
"""

from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, Field, model_validator

from packages.billing.models.domain.enums import (
    EventSource,
    LedgerOutcome,
    Plan,
    SubscriptionStatus,
)
from packages.billing.models.domain.subscription import Subscription
from packages.billing.periods import UTCDateTime, to_sequence


class BillingEventEnvelope(BaseModel):
    """
    A verified, parsed event.

    sequence is derived from occurred_at and is the only ordering the
    reconciler honours.
    """

    event_id: str
    event_type: str
    source: EventSource = EventSource.STRIPE
    occurred_at: UTCDateTime

    # Owning account when the event names it (metadata.account_id, override target)
    account_ref: Optional[int] = None
    external_subscription_ref: Optional[str] = None
    external_customer_ref: Optional[str] = None

    raw_body: dict[str, Any]

    @property
    def sequence(self) -> int:
        return to_sequence(self.occurred_at)

    @property
    def data_object(self) -> dict[str, Any]:
        """Provider object carried by the event (subscription, invoice, ...)."""
        return self.raw_body.get("data", {}).get("object", {})


class OverrideTarget(BaseModel):
    """Target state for a manual override. Unset fields are left as they are."""

    plan: Optional[Plan] = None
    status: Optional[SubscriptionStatus] = None
    current_period_end: Optional[UTCDateTime] = None
    grace_until: Optional[UTCDateTime] = None

    @model_validator(mode="after")
    def require_change(self) -> "OverrideTarget":
        if not self.model_fields_set or all(
            getattr(self, name) is None for name in self.model_fields_set
        ):
            raise ValueError("override target must set at least one field")
        return self


class OverridePayload(BaseModel):
    """Ledger payload of a manual.override event."""

    actor_account_id: int
    actor_email: str
    account_id: int
    target: OverrideTarget
    justification: str = Field(min_length=1)
    requested_at: datetime


class ReconcileResult(BaseModel):
    """Outcome of applying one envelope."""

    outcome: LedgerOutcome
    account_id: Optional[int] = None
    subscription: Optional[Subscription] = None
