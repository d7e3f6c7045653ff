"""
Billing enums - strongly typed enumerations for subscription and usage state.
"""

from enum import Enum


class Plan(str, Enum):
    """
    Subscription plans, ordered by entitlement.

    Prices live in Stripe; settings.stripe_price_plans maps price IDs here.
    """

    FREE = "free"
    TIER1 = "tier1"
    TIER2 = "tier2"
    TIER3 = "tier3"

    @property
    def rank(self) -> int:
        return list(Plan).index(self)

    def get_quota_limits(self) -> dict[str, int]:
        """
        Get per-period (calendar month) usage limits for this plan.

        Operation classes missing from the table are blocked.
        """
        limits = {
            Plan.FREE: {
                "editor_generation": 0,
                "ai_request": 0,
                "tool_usage": 0,
            },
            Plan.TIER1: {
                "editor_generation": 100,
                "ai_request": 0,
                "tool_usage": 100,
            },
            Plan.TIER2: {
                "editor_generation": 500,
                "ai_request": 100,
                "tool_usage": 500,
            },
            Plan.TIER3: {
                "editor_generation": 7_500,
                "ai_request": 7_500,
                "tool_usage": 7_500,
            },
        }
        return limits[self]

    def has_tools_entitlement(self) -> bool:
        """Image tools are included from tier2 up."""
        return self.rank >= Plan.TIER2.rank


class SubscriptionStatus(str, Enum):
    """
    Subscription status lifecycle.

    Flow: inactive -> trialing|active -> past_due -> active|canceled
    """

    INACTIVE = "inactive"  # No provider subscription yet
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"  # Payment failed; entitled until grace runs out
    CANCELED = "canceled"

    def is_paying(self) -> bool:
        return self in (SubscriptionStatus.TRIALING, SubscriptionStatus.ACTIVE)


class OperationClass(str, Enum):
    """Metered operation classes."""

    EDITOR_GENERATION = "editor_generation"
    AI_REQUEST = "ai_request"
    TOOL_USAGE = "tool_usage"


class EventType(str, Enum):
    """Event types the reconciler acts on. Anything else is ledgered and ignored."""

    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    INVOICE_PAID = "invoice.paid"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    MANUAL_OVERRIDE = "manual.override"


class EventSource(str, Enum):
    """Origin of a ledgered event."""

    STRIPE = "stripe"
    MANUAL = "manual"


class LedgerOutcome(str, Enum):
    """What dispatching a ledgered event did."""

    APPLIED = "applied"  # Aggregate advanced
    STALE = "stale"  # Not newer than the aggregate's marker; discarded
    IGNORED = "ignored"  # Event type has no effect on the aggregate


class UsageSource(str, Enum):
    """Which gate granted a unit of usage."""

    QUOTA = "quota"
    TRIAL = "trial"
    BYPASS = "bypass"
