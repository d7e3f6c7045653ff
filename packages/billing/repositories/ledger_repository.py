"""
Repository for the idempotency ledger.
"""

from datetime import datetime
from typing import List, Optional, Tuple
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from common.core.otel_axiom_exporter import trace_span, get_logger
from common.repositories.base import BaseRepository
from packages.billing.models.database.event_ledger import LedgerEntryEntity
from packages.billing.models.domain.enums import LedgerOutcome
from packages.billing.models.domain.events import BillingEventEnvelope
from packages.billing.models.domain.ledger import LedgerEntry
from packages.billing.periods import utcnow

logger = get_logger(__name__)


class LedgerRepository(BaseRepository[LedgerEntryEntity, LedgerEntry]):
    """Repository for ledgered events."""

    def __init__(self):
        super().__init__(LedgerEntryEntity, LedgerEntry)

    @trace_span
    async def get_by_event_id(self, event_id: str) -> Optional[LedgerEntry]:
        async with self._get_session(readonly=True) as session:
            result = await session.execute(
                select(LedgerEntryEntity).where(LedgerEntryEntity.event_id == event_id)
            )
            entity = result.scalar_one_or_none()
            return self._entity_to_domain(entity) if entity else None

    @trace_span
    async def record(self, envelope: BillingEventEnvelope) -> Tuple[LedgerEntry, bool]:
        """
        Insert the ledger row with applied=false.

        Returns (entry, created). A unique-key collision on event_id means a
        redelivery: its delivery_count is bumped and created is False.
        """
        entity = LedgerEntryEntity(
            event_id=envelope.event_id,
            event_type=envelope.event_type,
            source=envelope.source.value,
            account_id=envelope.account_ref,
            occurred_at=envelope.occurred_at,
            received_at=utcnow(),
            applied=False,
            attempts=0,
            delivery_count=1,
            payload=envelope.raw_body,
        )

        async with self._get_session() as session:
            try:
                async with session.begin_nested():
                    session.add(entity)
                    await session.flush()
                created = True
            except IntegrityError:
                await session.execute(
                    update(LedgerEntryEntity)
                    .where(LedgerEntryEntity.event_id == envelope.event_id)
                    .values(delivery_count=LedgerEntryEntity.delivery_count + 1)
                )
                created = False

        entry = await self.get_by_event_id(envelope.event_id)
        return entry, created

    @trace_span
    async def mark_applied(
        self, event_id: str, outcome: LedgerOutcome, account_id: Optional[int] = None
    ) -> bool:
        """
        Close an unapplied row with its outcome.

        Rows that are already applied keep their outcome and attempt count;
        returns False for them.
        """
        values = {
            "applied": True,
            "outcome": outcome.value,
            "error": None,
            "attempts": LedgerEntryEntity.attempts + 1,
            "applied_at": utcnow(),
        }
        if account_id is not None:
            values["account_id"] = account_id

        async with self._get_session() as session:
            result = await session.execute(
                update(LedgerEntryEntity)
                .where(
                    LedgerEntryEntity.event_id == event_id,
                    LedgerEntryEntity.applied == False,  # noqa: E712
                )
                .values(**values)
            )
            return result.rowcount > 0

    @trace_span
    async def mark_failed(self, event_id: str, error: str) -> None:
        """Record a failed dispatch. The row stays unapplied for the sweep."""
        async with self._get_session() as session:
            await session.execute(
                update(LedgerEntryEntity)
                .where(
                    LedgerEntryEntity.event_id == event_id,
                    LedgerEntryEntity.applied == False,  # noqa: E712
                )
                .values(error=error[:4000], attempts=LedgerEntryEntity.attempts + 1)
            )

    @trace_span
    async def get_pending(
        self, limit: int, max_attempts: int, received_before: datetime
    ) -> List[LedgerEntry]:
        """Unapplied rows eligible for replay, oldest event first."""
        async with self._get_session(readonly=True) as session:
            result = await session.execute(
                select(LedgerEntryEntity)
                .where(
                    LedgerEntryEntity.applied == False,  # noqa: E712
                    LedgerEntryEntity.attempts < max_attempts,
                    LedgerEntryEntity.received_at < received_before,
                )
                .order_by(LedgerEntryEntity.occurred_at, LedgerEntryEntity.id)
                .limit(limit)
            )
            return self._entities_to_domain(result.scalars().all())

    @trace_span
    async def list_entries(
        self, applied: Optional[bool] = None, skip: int = 0, limit: int = 100
    ) -> List[LedgerEntry]:
        query = select(LedgerEntryEntity)
        if applied is not None:
            query = query.where(LedgerEntryEntity.applied == applied)

        async with self._get_session(readonly=True) as session:
            result = await session.execute(
                query.order_by(LedgerEntryEntity.received_at.desc(), LedgerEntryEntity.id.desc())
                .offset(skip)
                .limit(limit)
            )
            return self._entities_to_domain(result.scalars().all())
