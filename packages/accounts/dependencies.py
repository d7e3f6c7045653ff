from typing import Annotated, Optional
from fastapi import Depends, Header

from common.core.exceptions import PermissionDenied, Unauthenticated
from common.core.otel_axiom_exporter import trace_span, get_logger
from packages.accounts.models.domain.account import AuthenticatedAccount
from packages.accounts.models.domain.enums import Capability
from packages.accounts.services.account_service import AccountService
from packages.accounts.services.role_resolver import (
    RoleResolverInterface,
    get_role_resolver,
)

logger = get_logger(__name__)


def get_account_service() -> AccountService:
    """Get AccountService instance."""
    return AccountService()


@trace_span
async def get_current_account(
    x_api_key: Annotated[Optional[str], Header()] = None,
    account_service: AccountService = Depends(get_account_service),
) -> AuthenticatedAccount:
    """Resolve the calling account from the x-api-key header."""
    if not x_api_key:
        raise Unauthenticated("API key required")

    account = await account_service.authenticate_api_key(x_api_key)
    if not account:
        raise Unauthenticated("Invalid API key")
    return account


def require_capability(capability: Capability):
    """Dependency factory: the caller's role must grant capability."""

    async def dependency(
        current_account: AuthenticatedAccount = Depends(get_current_account),
        role_resolver: RoleResolverInterface = Depends(get_role_resolver),
    ) -> AuthenticatedAccount:
        if not role_resolver.has_capability(current_account, capability):
            logger.warning(
                f"Account {current_account.account_id} denied {capability.value}",
                extra={"account_id": current_account.account_id},
            )
            raise PermissionDenied(capability.value)
        return current_account

    return dependency
