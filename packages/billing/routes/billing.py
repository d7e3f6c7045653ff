"""
Billing API routes.

Metered consumption and read-only subscription/usage status for the
calling account.
"""

from fastapi import APIRouter, Depends, Request, Response

from packages.accounts.dependencies import get_current_account
from packages.accounts.models.domain.account import AuthenticatedAccount
from packages.billing.dependencies import (
    get_usage_gate,
    rate_limit_identity,
    rate_limited,
    set_rate_limit_headers,
)
from packages.billing.models.domain.enums import OperationClass
from packages.billing.models.domain.subscription import SubscriptionView
from packages.billing.models.domain.usage import UsageSummary
from packages.billing.models.schemas.billing import (
    ConsumeRequest,
    QuotaDecisionResponse,
    UsageGrantResponse,
)
from packages.billing.services.quota_service import QuotaService
from packages.billing.services.subscription_service import SubscriptionService
from packages.billing.services.usage_gate import UsageGate

router = APIRouter()


# ============================================================================
# Metered Consumption
# ============================================================================


@router.post(
    "/quota/{operation_class}/consume", response_model=QuotaDecisionResponse
)
async def consume_quota(
    operation_class: OperationClass,
    request: Request,
    response: Response,
    body: ConsumeRequest = ConsumeRequest(),
    current_account: AuthenticatedAccount = Depends(get_current_account),
    usage_gate: UsageGate = Depends(get_usage_gate),
):
    """
    Consume units of an operation class for the current period.

    Rate limited first; 429 when either the window or the quota is full.
    """
    grant = await usage_gate.authorize(
        current_account,
        operation_class.value,
        amount=body.amount,
        bucket=body.bucket,
        identity=rate_limit_identity(request, current_account),
    )
    set_rate_limit_headers(response, grant.rate_limit)
    return QuotaDecisionResponse.from_decision(grant.quota)


@router.post("/trials/{feature_key}/consume", response_model=UsageGrantResponse)
async def consume_trial(
    feature_key: str,
    request: Request,
    response: Response,
    current_account: AuthenticatedAccount = Depends(get_current_account),
    usage_gate: UsageGate = Depends(get_usage_gate),
):
    """
    Use a tool feature.

    Unpaid accounts draw on the feature's trial allowance (402 once it is
    exhausted); paid accounts are metered against their tool_usage quota.
    """
    grant = await usage_gate.authorize(
        current_account,
        OperationClass.TOOL_USAGE.value,
        trial_feature=feature_key,
        identity=rate_limit_identity(request, current_account),
    )
    set_rate_limit_headers(response, grant.rate_limit)
    return UsageGrantResponse.from_grant(grant)


# ============================================================================
# Status
# ============================================================================


@router.get("/status", response_model=SubscriptionView)
async def get_subscription_status(
    current_account: AuthenticatedAccount = Depends(rate_limited("api")),
):
    """
    Get the calling account's subscription status.

    Accounts without a subscription report the free plan.
    """
    return await SubscriptionService().get_subscription_view(current_account.account_id)


@router.get("/usage", response_model=UsageSummary)
async def get_usage(
    current_account: AuthenticatedAccount = Depends(rate_limited("api")),
):
    """Current-period usage, limits and percentages for every operation class."""
    return await QuotaService().get_usage_summary(current_account.account_id)
