"""Database models for billing."""

from packages.billing.models.database.event_ledger import LedgerEntryEntity
from packages.billing.models.database.subscription import SubscriptionEntity
from packages.billing.models.database.trial_allowance import TrialAllowanceEntity
from packages.billing.models.database.usage import UsageEventEntity
from packages.billing.models.database.usage_counter import UsageCounterEntity

__all__ = [
    "LedgerEntryEntity",
    "SubscriptionEntity",
    "TrialAllowanceEntity",
    "UsageCounterEntity",
    "UsageEventEntity",
]
