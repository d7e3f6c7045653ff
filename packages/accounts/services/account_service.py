import secrets
import hashlib
from typing import Optional

from common.core.otel_axiom_exporter import trace_span, get_logger
from packages.accounts.models.domain.account import (
    AccountCreate,
    AccountCreateModel,
    AccountWithApiKey,
    AuthenticatedAccount,
)
from packages.accounts.repositories.account_repository import AccountRepository

logger = get_logger(__name__)

API_KEY_PREFIX = "ak_"


class AccountService:
    """Write path for account identities and API key authentication."""

    def __init__(self):
        self.account_repo = AccountRepository()

    @staticmethod
    def _generate_api_key() -> str:
        """Generate a secure random API key."""
        # Format: ak_<32 random bytes as hex>
        return f"{API_KEY_PREFIX}{secrets.token_hex(32)}"

    @staticmethod
    def _hash_api_key(api_key: str) -> str:
        """Hash an API key for storage."""
        return hashlib.sha256(api_key.encode()).hexdigest()

    @trace_span
    async def create_account(self, account_data: AccountCreate) -> AccountWithApiKey:
        """
        Create an account and return it with the plain-text API key.

        Raises:
            ConflictError: an account with the same normalized email exists
        """
        logger.info(f"Creating account: {account_data.email}")

        api_key = self._generate_api_key()
        account = await self.account_repo.create(
            AccountCreateModel(
                email=account_data.email,
                name=account_data.name,
                role=account_data.role,
                api_key_hash=self._hash_api_key(api_key),
            )
        )

        logger.info(f"Created account with ID: {account.id}")
        return AccountWithApiKey(account=account, api_key=api_key)

    @trace_span
    async def authenticate_api_key(
        self, api_key: str
    ) -> Optional[AuthenticatedAccount]:
        """Authenticate an API key and return the account context."""
        if not api_key.startswith(API_KEY_PREFIX):
            return None

        account = await self.account_repo.get_by_api_key_hash(
            self._hash_api_key(api_key)
        )
        if not account:
            return None

        return AuthenticatedAccount(
            account_id=account.id, email=account.email, role=account.role
        )
