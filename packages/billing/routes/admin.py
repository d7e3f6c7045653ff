"""
Admin API routes.

Manual subscription corrections, ledger inspection and rate-limit blocks.
Every route is guarded by a capability from the role resolver.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Response

from common.core.config import settings
from common.core.exceptions import NotFoundError, StoreUnavailable, ValidationError
from common.core.otel_axiom_exporter import get_logger
from common.providers.rate_limiter.factory import get_rate_limiter
from common.providers.rate_limiter.interface import RateLimitBlock
from packages.accounts.dependencies import require_capability
from packages.accounts.models.domain.account import AuthenticatedAccount
from packages.accounts.models.domain.enums import Capability
from packages.billing.dependencies import rate_limited, validate_identity
from packages.billing.models.domain.ledger import LedgerEntry, ReplayResult
from packages.billing.models.schemas.billing import (
    BlockRequest,
    GraceRequest,
    OverrideRequest,
    SubscriptionResponse,
)
from packages.billing.repositories.ledger_repository import LedgerRepository
from packages.billing.services.admin_override_service import AdminOverrideService
from packages.billing.services.replay_service import ReplayService

logger = get_logger(__name__)

router = APIRouter(dependencies=[Depends(rate_limited("admin"))])


def get_admin_override_service() -> AdminOverrideService:
    return AdminOverrideService()


@router.post(
    "/subscriptions/{account_id}/override", response_model=SubscriptionResponse
)
async def override_subscription(
    account_id: int,
    body: OverrideRequest,
    actor: AuthenticatedAccount = Depends(
        require_capability(Capability.SUBSCRIPTION_OVERRIDE)
    ),
    override_service: AdminOverrideService = Depends(get_admin_override_service),
):
    """
    Apply a manual.override event to an account's subscription.

    409 when effective_at is not newer than the last applied event.
    """
    subscription = await override_service.override(
        actor,
        account_id,
        body.target_state,
        body.justification,
        effective_at=body.effective_at,
    )
    return SubscriptionResponse.from_subscription(subscription)


@router.post("/subscriptions/{account_id}/grace", response_model=SubscriptionResponse)
async def grant_grace(
    account_id: int,
    body: GraceRequest,
    actor: AuthenticatedAccount = Depends(
        require_capability(Capability.SUBSCRIPTION_OVERRIDE)
    ),
    override_service: AdminOverrideService = Depends(get_admin_override_service),
):
    """Keep an account entitled until grace_until while payment is sorted out."""
    subscription = await override_service.grant_grace(
        actor, account_id, body.grace_until, body.justification, plan=body.plan
    )
    return SubscriptionResponse.from_subscription(subscription)


@router.get("/ledger", response_model=List[LedgerEntry])
async def list_ledger(
    applied: Optional[bool] = None,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=500),
    actor: AuthenticatedAccount = Depends(require_capability(Capability.LEDGER_READ)),
):
    """Ledgered events, newest first. applied=false lists the replay backlog."""
    return await LedgerRepository().list_entries(applied=applied, skip=skip, limit=limit)


@router.post("/ledger/replay", response_model=ReplayResult)
async def replay_ledger(
    batch_size: Optional[int] = Query(default=None, ge=1, le=1000),
    actor: AuthenticatedAccount = Depends(require_capability(Capability.LEDGER_REPLAY)),
):
    """Run one replay sweep now instead of waiting for the worker."""
    return await ReplayService().replay_pending(batch_size=batch_size)


@router.post("/rate-limits/blocks/{identity}", response_model=RateLimitBlock)
async def block_identity(
    identity: str,
    body: BlockRequest,
    actor: AuthenticatedAccount = Depends(
        require_capability(Capability.RATE_LIMIT_BLOCK)
    ),
):
    """
    Deny an identity (account:<id> or ip:<address>) in every bucket until
    the block expires or is lifted. Blocking again replaces the TTL.
    """
    validate_identity(identity)
    if body.ttl_seconds > settings.rate_limit_block_max_seconds:
        raise ValidationError(
            f"ttl_seconds may not exceed {settings.rate_limit_block_max_seconds}"
        )

    block = await get_rate_limiter().block(identity, body.ttl_seconds)
    logger.warning(
        f"Identity {identity} blocked by {actor.email}: {body.reason}",
        extra={
            "identity": identity,
            "actor_account_id": actor.account_id,
            "ttl_seconds": body.ttl_seconds,
        },
    )
    return block


@router.get("/rate-limits/blocks/{identity}", response_model=RateLimitBlock)
async def get_identity_block(
    identity: str,
    actor: AuthenticatedAccount = Depends(
        require_capability(Capability.RATE_LIMIT_BLOCK)
    ),
):
    validate_identity(identity)
    try:
        block = await get_rate_limiter().is_blocked(identity)
    except Exception as e:
        raise StoreUnavailable(f"Could not read block for {identity}: {e}") from e
    if block is None:
        raise NotFoundError(f"No active block for {identity}")
    return block


@router.delete("/rate-limits/blocks/{identity}", status_code=204)
async def unblock_identity(
    identity: str,
    actor: AuthenticatedAccount = Depends(
        require_capability(Capability.RATE_LIMIT_BLOCK)
    ),
):
    """Lift a block. Lifting an identity that is not blocked is a no-op."""
    validate_identity(identity)
    await get_rate_limiter().unblock(identity)
    logger.info(
        f"Identity {identity} unblocked by {actor.email}",
        extra={"identity": identity, "actor_account_id": actor.account_id},
    )
    return Response(status_code=204)
