"""
Admin override gateway.

Overrides are synthetic manual.override events: ledgered like provider
events and applied by the reconciler under the same ordering rule.
"""

import uuid
from datetime import datetime, timedelta
from typing import Any, Optional

from common.core.config import settings
from common.core.exceptions import NotFoundError, PermissionDenied, StaleEvent, ValidationError
from common.core.otel_axiom_exporter import trace_span, get_logger
from common.db.retry import run_with_store_retry
from packages.accounts.models.domain.account import AuthenticatedAccount
from packages.accounts.models.domain.enums import Capability
from packages.accounts.repositories.account_repository import AccountRepository
from packages.accounts.services.role_resolver import (
    RoleResolverInterface,
    get_role_resolver,
)
from packages.billing.models.domain.enums import EventSource, EventType, Plan, SubscriptionStatus
from packages.billing.models.domain.events import (
    BillingEventEnvelope,
    OverridePayload,
    OverrideTarget,
)
from packages.billing.models.domain.subscription import Subscription
from packages.billing.periods import utcnow
from packages.billing.repositories.ledger_repository import LedgerRepository
from packages.billing.repositories.subscription_repository import SubscriptionRepository
from packages.billing.services.reconciler_service import ReconcilerService

logger = get_logger(__name__)

MANUAL_EVENT_PREFIX = "manual_"


def build_override_envelope(
    event_id: str, account_id: int, occurred_at: datetime, payload: dict[str, Any]
) -> BillingEventEnvelope:
    """Envelope for a manual.override ledger row (fresh or replayed)."""
    return BillingEventEnvelope(
        event_id=event_id,
        event_type=EventType.MANUAL_OVERRIDE.value,
        source=EventSource.MANUAL,
        occurred_at=occurred_at,
        account_ref=account_id,
        raw_body=payload,
    )


class AdminOverrideService:
    """Privileged manual state changes on subscription aggregates."""

    def __init__(
        self,
        reconciler: Optional[ReconcilerService] = None,
        role_resolver: Optional[RoleResolverInterface] = None,
    ):
        self.reconciler = reconciler or ReconcilerService()
        self.role_resolver = role_resolver or get_role_resolver()
        self.ledger_repo = LedgerRepository()
        self.subscription_repo = SubscriptionRepository()
        self.account_repo = AccountRepository()

    async def _validate(
        self,
        account_id: int,
        target: OverrideTarget,
        justification: str,
        now: datetime,
        effective_at: Optional[datetime] = None,
    ) -> None:
        if not justification or not justification.strip():
            raise ValidationError("A justification is required for overrides")

        # A future-dated marker would turn every real provider event stale
        skew = timedelta(seconds=settings.override_max_clock_skew_seconds)
        if effective_at is not None and effective_at > now + skew:
            raise ValidationError("effective_at cannot be in the future")

        if await self.account_repo.get(account_id) is None:
            raise NotFoundError(f"Account {account_id} not found")

        if target.status == SubscriptionStatus.ACTIVE:
            period_end = target.current_period_end
            if period_end is None:
                existing = await self.subscription_repo.get_by_account_id(account_id)
                period_end = existing.current_period_end if existing else None

            tolerance = timedelta(days=settings.entitlement_grace_tolerance_days)
            if period_end is None or period_end + tolerance <= now:
                raise ValidationError(
                    "An active override needs a current_period_end that has not passed"
                )

    @trace_span
    async def override(
        self,
        actor: AuthenticatedAccount,
        account_id: int,
        target: OverrideTarget,
        justification: str,
        effective_at: Optional[datetime] = None,
    ) -> Subscription:
        """
        Move an account's subscription to target through the reconciler.

        Raises:
            PermissionDenied: actor lacks subscription.override
            ValidationError: missing justification, an already-expired active
                target, or effective_at later than now plus the allowed clock skew
            NotFoundError: the account does not exist
            StaleEvent: effective_at is not newer than the last applied event
        """
        if not self.role_resolver.has_capability(actor, Capability.SUBSCRIPTION_OVERRIDE):
            logger.warning(
                f"Account {actor.account_id} attempted an override without capability",
                extra={"actor_account_id": actor.account_id, "account_id": account_id},
            )
            raise PermissionDenied(Capability.SUBSCRIPTION_OVERRIDE.value)

        now = utcnow()
        await self._validate(account_id, target, justification, now, effective_at)

        payload = OverridePayload(
            actor_account_id=actor.account_id,
            actor_email=actor.email,
            account_id=account_id,
            target=target,
            justification=justification.strip(),
            requested_at=now,
        )
        envelope = build_override_envelope(
            event_id=f"{MANUAL_EVENT_PREFIX}{uuid.uuid4().hex}",
            account_id=account_id,
            occurred_at=effective_at or now,
            payload=payload.model_dump(mode="json", exclude_none=True),
        )

        await run_with_store_retry(
            lambda: self.ledger_repo.record(envelope), "ledger.record"
        )
        logger.info(
            f"Override {envelope.event_id} requested by {actor.email} for account {account_id}",
            extra={
                "event_id": envelope.event_id,
                "actor_account_id": actor.account_id,
                "account_id": account_id,
                "target": target.model_dump(mode="json", exclude_none=True),
            },
        )

        try:
            result = await self.reconciler.apply(envelope)
        except StaleEvent:
            raise
        except Exception as e:
            await run_with_store_retry(
                lambda: self.ledger_repo.mark_failed(envelope.event_id, repr(e)),
                "ledger.mark_failed",
            )
            raise

        return result.subscription

    @trace_span
    async def grant_grace(
        self,
        actor: AuthenticatedAccount,
        account_id: int,
        grace_until: datetime,
        justification: str,
        plan: Optional[Plan] = None,
    ) -> Subscription:
        """Keep an account entitled (past_due) until grace_until."""
        if grace_until <= utcnow():
            raise ValidationError("grace_until must be in the future")

        target = OverrideTarget(
            plan=plan, status=SubscriptionStatus.PAST_DUE, grace_until=grace_until
        )
        return await self.override(actor, account_id, target, justification)
