"""Billing services."""

from packages.billing.services.subscription_service import SubscriptionService
from packages.billing.services.usage_service import UsageService
from packages.billing.services.quota_service import QuotaService
from packages.billing.services.trial_service import TrialService
from packages.billing.services.reconciler_service import ReconcilerService
from packages.billing.services.ingestor_service import IngestorService
from packages.billing.services.admin_override_service import AdminOverrideService
from packages.billing.services.replay_service import ReplayService
from packages.billing.services.usage_gate import UsageGate

__all__ = [
    "SubscriptionService",
    "UsageService",
    "QuotaService",
    "TrialService",
    "ReconcilerService",
    "IngestorService",
    "AdminOverrideService",
    "ReplayService",
    "UsageGate",
]
