"""
Repository for period usage counters.

Counters are only ever changed by try_increment(), a single conditional
UPDATE. Nothing reads a counter and writes it back.
"""

from typing import Dict, Optional
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.sql import func

from common.core.otel_axiom_exporter import trace_span
from common.repositories.base import BaseRepository
from packages.billing.models.database.usage_counter import UsageCounterEntity
from packages.billing.models.domain.usage import UsageCounter


class UsageCounterRepository(BaseRepository[UsageCounterEntity, UsageCounter]):
    def __init__(self):
        super().__init__(UsageCounterEntity, UsageCounter)

    def _key(self, account_id: int, operation_class: str, period_key: str):
        return (
            UsageCounterEntity.account_id == account_id,
            UsageCounterEntity.operation_class == operation_class,
            UsageCounterEntity.period_key == period_key,
        )

    @trace_span
    async def ensure_counter(
        self, account_id: int, operation_class: str, period_key: str, count: int = 0
    ) -> bool:
        """Create the period row if missing. Returns True if this call created it."""
        async with self._get_session() as session:
            try:
                async with session.begin_nested():
                    session.add(
                        UsageCounterEntity(
                            account_id=account_id,
                            operation_class=operation_class,
                            period_key=period_key,
                            count=count,
                        )
                    )
                    await session.flush()
                return True
            except IntegrityError:
                return False

    @trace_span
    async def try_increment(
        self,
        account_id: int,
        operation_class: str,
        period_key: str,
        amount: int,
        limit: int,
    ) -> Optional[int]:
        """
        Atomically add amount if count + amount <= limit.

        Returns the new count, or None if the row is missing or the limit
        would be exceeded.
        """
        async with self._get_session() as session:
            result = await session.execute(
                update(UsageCounterEntity)
                .where(
                    *self._key(account_id, operation_class, period_key),
                    UsageCounterEntity.count + amount <= limit,
                )
                .values(count=UsageCounterEntity.count + amount, updated_at=func.now())
                .returning(UsageCounterEntity.count)
                .execution_options(synchronize_session=False)
            )
            return result.scalar_one_or_none()

    @trace_span
    async def get_count(
        self, account_id: int, operation_class: str, period_key: str
    ) -> Optional[int]:
        async with self._get_session(readonly=True) as session:
            result = await session.execute(
                select(UsageCounterEntity.count).where(
                    *self._key(account_id, operation_class, period_key)
                )
            )
            return result.scalar_one_or_none()

    @trace_span
    async def get_counts_for_period(
        self, account_id: int, period_key: str
    ) -> Dict[str, int]:
        async with self._get_session(readonly=True) as session:
            result = await session.execute(
                select(UsageCounterEntity.operation_class, UsageCounterEntity.count).where(
                    UsageCounterEntity.account_id == account_id,
                    UsageCounterEntity.period_key == period_key,
                )
            )
            return {row.operation_class: row.count for row in result.all()}
