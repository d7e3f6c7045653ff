"""Domain models for billing."""

from packages.billing.models.domain.enums import (
    EventSource,
    EventType,
    LedgerOutcome,
    OperationClass,
    Plan,
    SubscriptionStatus,
    UsageSource,
)
from packages.billing.models.domain.events import (
    BillingEventEnvelope,
    OverridePayload,
    OverrideTarget,
    ReconcileResult,
)
from packages.billing.models.domain.ledger import (
    IngestResult,
    LedgerEntry,
    ReplayResult,
)
from packages.billing.models.domain.subscription import (
    Subscription,
    SubscriptionState,
    SubscriptionView,
)
from packages.billing.models.domain.usage import (
    QuotaDecision,
    TrialDecision,
    UsageEvent,
    UsageGrant,
    UsageSummary,
)

__all__ = [
    # Enums
    "EventSource",
    "EventType",
    "LedgerOutcome",
    "OperationClass",
    "Plan",
    "SubscriptionStatus",
    "UsageSource",
    # Events
    "BillingEventEnvelope",
    "OverridePayload",
    "OverrideTarget",
    "ReconcileResult",
    # Ledger
    "IngestResult",
    "LedgerEntry",
    "ReplayResult",
    # Subscription
    "Subscription",
    "SubscriptionState",
    "SubscriptionView",
    # Usage
    "QuotaDecision",
    "TrialDecision",
    "UsageEvent",
    "UsageGrant",
    "UsageSummary",
]
