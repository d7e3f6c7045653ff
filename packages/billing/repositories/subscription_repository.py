"""
Repository for the subscription aggregate.
"""

from typing import Any, Optional
from sqlalchemy import select, update, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.sql import func

from common.repositories.base import BaseRepository
from packages.billing.models.database.subscription import SubscriptionEntity
from packages.billing.models.domain.subscription import Subscription, SubscriptionState
from common.core.otel_axiom_exporter import trace_span


def _state_values(state: SubscriptionState) -> dict[str, Any]:
    values = state.model_dump()
    values["plan"] = state.plan.value
    values["status"] = state.status.value
    return values


class SubscriptionRepository(BaseRepository[SubscriptionEntity, Subscription]):
    """
    Repository for subscription aggregates.

    apply_transition() is the only write of reconciler-owned fields.
    """

    def __init__(self):
        super().__init__(SubscriptionEntity, Subscription)

    @trace_span
    async def get_by_account_id(self, account_id: int) -> Optional[Subscription]:
        async with self._get_session(readonly=True) as session:
            result = await session.execute(
                select(SubscriptionEntity).where(
                    SubscriptionEntity.account_id == account_id
                )
            )
            entity = result.scalar_one_or_none()
            return self._entity_to_domain(entity) if entity else None

    @trace_span
    async def get_by_external_subscription_ref(
        self, external_subscription_ref: str
    ) -> Optional[Subscription]:
        async with self._get_session(readonly=True) as session:
            result = await session.execute(
                select(SubscriptionEntity).where(
                    SubscriptionEntity.external_subscription_ref
                    == external_subscription_ref
                )
            )
            entity = result.scalar_one_or_none()
            return self._entity_to_domain(entity) if entity else None

    @trace_span
    async def get_by_external_customer_ref(
        self, external_customer_ref: str
    ) -> Optional[Subscription]:
        """Most recent aggregate linked to a provider customer."""
        async with self._get_session(readonly=True) as session:
            result = await session.execute(
                select(SubscriptionEntity)
                .where(SubscriptionEntity.external_customer_ref == external_customer_ref)
                .order_by(SubscriptionEntity.id.desc())
                .limit(1)
            )
            entity = result.scalar_one_or_none()
            return self._entity_to_domain(entity) if entity else None

    @trace_span
    async def ensure_for_account(self, account_id: int) -> Subscription:
        """Get the aggregate, creating it as inactive/free if missing."""
        existing = await self.get_by_account_id(account_id)
        if existing:
            return existing

        async with self._get_session() as session:
            try:
                async with session.begin_nested():
                    session.add(SubscriptionEntity(account_id=account_id))
                    await session.flush()
            except IntegrityError:
                # Created concurrently by another dispatch
                pass

        return await self.get_by_account_id(account_id)

    @trace_span
    async def lock_for_account(self, account_id: int) -> Subscription:
        """
        Get the aggregate (creating it if missing) for a read-modify-write.

        The row stays locked until the enclosing transaction() ends, so a
        concurrent apply for the same account waits instead of deriving its
        next state from the same snapshot.
        """
        await self.ensure_for_account(account_id)

        async with self._get_session() as session:
            result = await session.execute(
                select(SubscriptionEntity)
                .where(SubscriptionEntity.account_id == account_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            return self._entity_to_domain(result.scalar_one())

    @trace_span
    async def apply_transition(
        self,
        account_id: int,
        state: SubscriptionState,
        sequence: int,
        event_id: str,
        expected_sequence: Optional[int],
    ) -> Optional[Subscription]:
        """
        Persist state computed from the aggregate at expected_sequence.

        Single conditional UPDATE (compare-and-set on last_event_sequence).
        Returns None when the stored marker is no longer expected_sequence
        or is not older than sequence; the caller re-reads and decides.
        """
        marker_unchanged = (
            SubscriptionEntity.last_event_sequence.is_(None)
            if expected_sequence is None
            else SubscriptionEntity.last_event_sequence == expected_sequence
        )
        async with self._get_session() as session:
            result = await session.execute(
                update(SubscriptionEntity)
                .where(
                    SubscriptionEntity.account_id == account_id,
                    marker_unchanged,
                    or_(
                        SubscriptionEntity.last_event_sequence.is_(None),
                        SubscriptionEntity.last_event_sequence < sequence,
                    ),
                )
                .values(
                    **_state_values(state),
                    last_event_sequence=sequence,
                    last_event_id=event_id,
                    updated_at=func.now(),
                )
                .returning(SubscriptionEntity.id)
            )
            if result.scalar_one_or_none() is None:
                return None
            await session.flush()

        return await self.get_by_account_id(account_id)
