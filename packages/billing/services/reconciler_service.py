"""
Subscription reconciler.

The single writer of reconciler-owned aggregate fields. Provider events and
manual overrides both enter through apply(); ordering is decided only by
the event timestamp against the aggregate's last_event_sequence.
"""

from typing import Optional

from common.core.exceptions import ConflictError, NotFoundError, StaleEvent
from common.core.otel_axiom_exporter import trace_span, get_logger
from common.db.scoped import transaction
from packages.accounts.repositories.account_repository import AccountRepository
from packages.billing.models.domain.enums import LedgerOutcome
from packages.billing.models.domain.events import BillingEventEnvelope, ReconcileResult
from packages.billing.repositories.ledger_repository import LedgerRepository
from packages.billing.repositories.subscription_repository import SubscriptionRepository
from packages.billing.services.transitions import handles, next_state
from packages.billing.subscription_cache import SubscriptionReadCache

logger = get_logger(__name__)

# Compare-and-set retries when other events keep landing on the same aggregate
_MAX_APPLY_ATTEMPTS = 5


class ReconcilerService:
    """Applies ledgered events to subscription aggregates."""

    def __init__(self, read_cache: Optional[SubscriptionReadCache] = None):
        self.subscription_repo = SubscriptionRepository()
        self.ledger_repo = LedgerRepository()
        self.account_repo = AccountRepository()
        self.read_cache = read_cache or SubscriptionReadCache()

    async def _resolve_account(self, envelope: BillingEventEnvelope) -> Optional[int]:
        """Explicit account reference first, then the provider subscription, then the customer."""
        if envelope.account_ref is not None:
            return envelope.account_ref

        if envelope.external_subscription_ref:
            subscription = await self.subscription_repo.get_by_external_subscription_ref(
                envelope.external_subscription_ref
            )
            if subscription:
                return subscription.account_id

        if envelope.external_customer_ref:
            subscription = await self.subscription_repo.get_by_external_customer_ref(
                envelope.external_customer_ref
            )
            if subscription:
                return subscription.account_id

        return None

    async def _resolve_existing_account(self, envelope: BillingEventEnvelope) -> int:
        account_id = await self._resolve_account(envelope)
        if account_id is None:
            raise NotFoundError(
                f"No account for event {envelope.event_id} "
                f"(subscription={envelope.external_subscription_ref}, customer={envelope.external_customer_ref})"
            )
        if await self.account_repo.get(account_id) is None:
            raise NotFoundError(f"Account {account_id} not found")
        return account_id

    @trace_span
    async def apply(self, envelope: BillingEventEnvelope) -> ReconcileResult:
        """
        Apply one ledgered event.

        The aggregate is read row-locked and written back with a
        compare-and-set on last_event_sequence; if another event committed
        in between, the aggregate is re-read and the transition recomputed.
        The aggregate write and the ledger update commit together. The read
        cache entry is invalidated after the commit.

        Raises:
            StaleEvent: the event is not newer than the last applied one.
                The ledger row is already marked stale when this is raised.
            NotFoundError: no account can be resolved for the event
            ConflictError: the aggregate changed on every attempt
        """
        if not handles(envelope.event_type):
            await self.ledger_repo.mark_applied(envelope.event_id, LedgerOutcome.IGNORED)
            logger.info(
                f"Ignoring event type {envelope.event_type}",
                extra={"event_id": envelope.event_id, "event_type": envelope.event_type},
            )
            return ReconcileResult(outcome=LedgerOutcome.IGNORED)

        updated = None
        stale_marker = None
        for attempt in range(1, _MAX_APPLY_ATTEMPTS + 1):
            async with transaction():
                account_id = await self._resolve_existing_account(envelope)
                current = await self.subscription_repo.lock_for_account(account_id)

                if (
                    current.last_event_sequence is not None
                    and envelope.sequence <= current.last_event_sequence
                ):
                    stale_marker = current.last_event_sequence
                    await self.ledger_repo.mark_applied(
                        envelope.event_id, LedgerOutcome.STALE, account_id
                    )
                else:
                    transition = next_state(current.to_state(), envelope)
                    updated = await self.subscription_repo.apply_transition(
                        account_id,
                        transition.state,
                        envelope.sequence,
                        envelope.event_id,
                        expected_sequence=current.last_event_sequence,
                    )
                    if updated is not None:
                        await self.ledger_repo.mark_applied(
                            envelope.event_id, transition.outcome, account_id
                        )

            if updated is not None or stale_marker is not None:
                break

            # Another event committed between the read and the write
            logger.info(
                f"Aggregate for account {account_id} moved while applying {envelope.event_id}, re-reading",
                extra={"event_id": envelope.event_id, "account_id": account_id, "attempt": attempt},
            )
        else:
            raise ConflictError(
                f"Aggregate for account {account_id} kept changing while applying {envelope.event_id}"
            )

        if stale_marker is not None:
            logger.info(
                f"Discarding stale event {envelope.event_id} for account {account_id}",
                extra={
                    "event_id": envelope.event_id,
                    "account_id": account_id,
                    "sequence": envelope.sequence,
                    "last_event_sequence": stale_marker,
                },
            )
            raise StaleEvent(
                envelope.event_id, account_id, envelope.sequence, stale_marker
            )

        await self.read_cache.invalidate(account_id)

        logger.info(
            f"Applied {envelope.event_type} to account {account_id}: {updated.status.value}/{updated.plan.value}",
            extra={
                "event_id": envelope.event_id,
                "account_id": account_id,
                "status": updated.status.value,
                "plan": updated.plan.value,
            },
        )
        return ReconcileResult(
            outcome=transition.outcome, account_id=account_id, subscription=updated
        )
