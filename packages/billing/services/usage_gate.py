"""
Usage gate: rate limiter, then quota or trial, then the usage recorder.
"""

from typing import Optional

from common.core.exceptions import QuotaExceeded, RateLimited, TrialExhausted
from common.core.otel_axiom_exporter import trace_span, get_logger
from common.providers.rate_limiter.factory import get_rate_limiter
from common.providers.rate_limiter.interface import RateLimiterInterface
from packages.accounts.models.domain.account import AuthenticatedAccount
from packages.accounts.models.domain.enums import Capability
from packages.accounts.services.role_resolver import (
    RoleResolverInterface,
    get_role_resolver,
)
from packages.billing.models.domain.enums import Plan, UsageSource
from packages.billing.models.domain.usage import UsageGrant
from packages.billing.services.quota_service import QuotaService
from packages.billing.services.subscription_service import SubscriptionService
from packages.billing.services.trial_service import TrialService
from packages.billing.services.usage_service import UsageService

logger = get_logger(__name__)


class UsageGate:
    """Authorizes one metered request for an authenticated account."""

    def __init__(
        self,
        rate_limiter: Optional[RateLimiterInterface] = None,
        role_resolver: Optional[RoleResolverInterface] = None,
        subscription_service: Optional[SubscriptionService] = None,
    ):
        self.rate_limiter = rate_limiter or get_rate_limiter()
        self.role_resolver = role_resolver or get_role_resolver()
        self.subscription_service = subscription_service or SubscriptionService()
        self.quota_service = QuotaService(self.subscription_service)
        self.trial_service = TrialService()
        self.usage_service = UsageService()

    @trace_span
    async def authorize(
        self,
        account: AuthenticatedAccount,
        operation_class: str,
        amount: int = 1,
        bucket: Optional[str] = None,
        trial_feature: Optional[str] = None,
        identity: Optional[str] = None,
    ) -> UsageGrant:
        """
        Rate-limit, meter and record one request.

        Unpaid accounts asking for a trial feature draw from the trial
        allowance instead of the period quota.

        Raises:
            RateLimited: the identity's window for bucket is full
            TrialExhausted: the trial allowance is used up
            QuotaExceeded: the period quota is used up
            StoreUnavailable: a store stayed unreachable through retries
        """
        rate_limit = await self.rate_limiter.allow(
            identity or f"account:{account.account_id}", bucket
        )
        if not rate_limit.allowed:
            raise RateLimited(
                rate_limit.bucket,
                rate_limit.limit,
                rate_limit.remaining,
                rate_limit.reset_at,
            )

        grant: UsageGrant
        if self.role_resolver.has_capability(account, Capability.QUOTA_BYPASS):
            quota = await self.quota_service.check_and_consume(
                account.account_id, operation_class, amount, bypass=True
            )
            grant = UsageGrant(
                source=UsageSource.BYPASS, rate_limit=rate_limit, quota=quota
            )
        elif (
            trial_feature
            and await self.subscription_service.get_effective_plan(account.account_id)
            == Plan.FREE
        ):
            trial = await self.trial_service.check_trial(account.account_id, trial_feature)
            if not trial.allowed:
                raise TrialExhausted(trial_feature, trial.used, trial.cap)
            grant = UsageGrant(
                source=UsageSource.TRIAL, rate_limit=rate_limit, trial=trial
            )
        else:
            quota = await self.quota_service.check_and_consume(
                account.account_id, operation_class, amount
            )
            if not quota.allowed:
                raise QuotaExceeded(
                    operation_class, quota.limit, quota.remaining, quota.reset_at
                )
            grant = UsageGrant(
                source=UsageSource.QUOTA, rate_limit=rate_limit, quota=quota
            )

        await self.usage_service.record_usage(
            account.account_id,
            trial_feature if grant.source == UsageSource.TRIAL else operation_class,
            grant.source,
            amount=1 if grant.source == UsageSource.TRIAL else amount,
            period_key=grant.quota.period_key if grant.quota else None,
            event_metadata={"bucket": rate_limit.bucket, "actor_email": account.email},
        )
        return grant
