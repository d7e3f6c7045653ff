"""Billing repositories."""

from packages.billing.repositories.ledger_repository import LedgerRepository
from packages.billing.repositories.subscription_repository import SubscriptionRepository
from packages.billing.repositories.trial_repository import TrialAllowanceRepository
from packages.billing.repositories.usage_counter_repository import UsageCounterRepository
from packages.billing.repositories.usage_event_repository import UsageEventRepository

__all__ = [
    "LedgerRepository",
    "SubscriptionRepository",
    "TrialAllowanceRepository",
    "UsageCounterRepository",
    "UsageEventRepository",
]
