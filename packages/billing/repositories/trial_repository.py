"""
Repository for trial allowances.
"""

from typing import Optional
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.sql import func

from common.core.otel_axiom_exporter import trace_span
from common.repositories.base import BaseRepository
from packages.billing.models.database.trial_allowance import TrialAllowanceEntity
from packages.billing.models.domain.usage import TrialAllowance


class TrialAllowanceRepository(BaseRepository[TrialAllowanceEntity, TrialAllowance]):
    def __init__(self):
        super().__init__(TrialAllowanceEntity, TrialAllowance)

    @trace_span
    async def ensure_allowance(self, account_id: int, feature_key: str, cap: int) -> bool:
        """Create the allowance with its fixed cap if missing."""
        async with self._get_session() as session:
            try:
                async with session.begin_nested():
                    session.add(
                        TrialAllowanceEntity(
                            account_id=account_id,
                            feature_key=feature_key,
                            used=0,
                            cap=cap,
                        )
                    )
                    await session.flush()
                return True
            except IntegrityError:
                return False

    @trace_span
    async def try_use(self, account_id: int, feature_key: str) -> Optional[int]:
        """Atomically consume one use if used < cap. Returns the new used count."""
        async with self._get_session() as session:
            result = await session.execute(
                update(TrialAllowanceEntity)
                .where(
                    TrialAllowanceEntity.account_id == account_id,
                    TrialAllowanceEntity.feature_key == feature_key,
                    TrialAllowanceEntity.used < TrialAllowanceEntity.cap,
                )
                .values(used=TrialAllowanceEntity.used + 1, updated_at=func.now())
                .returning(TrialAllowanceEntity.used)
                .execution_options(synchronize_session=False)
            )
            return result.scalar_one_or_none()

    @trace_span
    async def get_allowance(
        self, account_id: int, feature_key: str
    ) -> Optional[TrialAllowance]:
        async with self._get_session(readonly=True) as session:
            result = await session.execute(
                select(TrialAllowanceEntity).where(
                    TrialAllowanceEntity.account_id == account_id,
                    TrialAllowanceEntity.feature_key == feature_key,
                )
            )
            entity = result.scalar_one_or_none()
            return self._entity_to_domain(entity) if entity else None
