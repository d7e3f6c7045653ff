from packages.accounts.models.domain.account import (
    Account,
    AccountCreate,
    AccountWithApiKey,
    AuthenticatedAccount,
)
from packages.accounts.models.domain.enums import Capability, Role

__all__ = [
    "Account",
    "AccountCreate",
    "AccountWithApiKey",
    "AuthenticatedAccount",
    "Capability",
    "Role",
]
