"""
Repository for usage event tracking.
"""

from typing import List, Optional
from sqlalchemy import select

from common.repositories.base import BaseRepository
from packages.billing.models.database.usage import UsageEventEntity
from packages.billing.models.domain.enums import UsageSource
from packages.billing.models.domain.usage import UsageEvent, UsageEventCreateModel
from common.core.otel_axiom_exporter import trace_span


class UsageEventRepository(BaseRepository[UsageEventEntity, UsageEvent]):
    """Repository for the append-only usage audit."""

    def __init__(self):
        super().__init__(UsageEventEntity, UsageEvent)

    @trace_span
    async def create(self, create_model: UsageEventCreateModel) -> UsageEvent:
        data = create_model.model_dump()
        data["source"] = create_model.source.value
        entity = UsageEventEntity(**data)
        async with self._get_session() as session:
            session.add(entity)
            await session.flush()
            await session.refresh(entity)
            return self._entity_to_domain(entity)

    @trace_span
    async def get_by_account(
        self,
        account_id: int,
        source: Optional[UsageSource] = None,
        limit: int = 100,
    ) -> List[UsageEvent]:
        query = select(UsageEventEntity).where(UsageEventEntity.account_id == account_id)
        if source is not None:
            query = query.where(UsageEventEntity.source == source.value)

        async with self._get_session(readonly=True) as session:
            result = await session.execute(
                query.order_by(UsageEventEntity.id.desc()).limit(limit)
            )
            return self._entities_to_domain(result.scalars().all())
