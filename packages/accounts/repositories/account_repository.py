from typing import Optional
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from common.core.exceptions import ConflictError
from common.core.otel_axiom_exporter import trace_span
from common.repositories.base import BaseRepository
from packages.accounts.models.database.account import AccountEntity
from packages.accounts.models.domain.account import (
    Account,
    AccountCreateModel,
    normalize_email,
)


class AccountRepository(BaseRepository[AccountEntity, Account]):
    def __init__(self):
        super().__init__(AccountEntity, Account)

    @trace_span
    async def create(self, create_model: AccountCreateModel) -> Account:
        """Insert an account. The unique email index is the only duplicate check."""
        entity = AccountEntity(**create_model.model_dump(mode="json", exclude_none=True))
        async with self._get_session() as session:
            try:
                async with session.begin_nested():
                    session.add(entity)
                    await session.flush()
            except IntegrityError as e:
                raise ConflictError(
                    f"Account with email '{create_model.email}' already exists"
                ) from e
            await session.refresh(entity)
            return self._entity_to_domain(entity)

    @trace_span
    async def get_by_email(self, email: str) -> Optional[Account]:
        """Get account by email (normalized before lookup)."""
        async with self._get_session(readonly=True) as session:
            result = await session.execute(
                select(AccountEntity).where(AccountEntity.email == normalize_email(email))
            )
            entity = result.scalar_one_or_none()
            return self._entity_to_domain(entity) if entity else None

    @trace_span
    async def get_by_api_key_hash(self, api_key_hash: str) -> Optional[Account]:
        """Get an active account by API key hash."""
        async with self._get_session(readonly=True) as session:
            result = await session.execute(
                select(AccountEntity).where(
                    AccountEntity.api_key_hash == api_key_hash,
                    AccountEntity.is_active == True,  # noqa: E712
                )
            )
            entity = result.scalar_one_or_none()
            return self._entity_to_domain(entity) if entity else None
