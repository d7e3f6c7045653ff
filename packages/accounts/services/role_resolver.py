from abc import ABC, abstractmethod
from typing import Optional, Set

from common.core.config import settings
from common.core.otel_axiom_exporter import get_logger
from packages.accounts.models.domain.account import AuthenticatedAccount
from packages.accounts.models.domain.enums import Capability, Role

logger = get_logger(__name__)


class RoleResolverInterface(ABC):
    """Single capability check consulted by every protected operation."""

    @abstractmethod
    def capabilities_for(self, account: AuthenticatedAccount) -> Set[Capability]:
        pass

    def has_capability(
        self, account: AuthenticatedAccount, capability: Capability
    ) -> bool:
        return capability in self.capabilities_for(account)


class SettingsRoleResolver(RoleResolverInterface):
    """Maps an account's role to capabilities from settings.role_capabilities."""

    def capabilities_for(self, account: AuthenticatedAccount) -> Set[Capability]:
        role = account.role.value if isinstance(account.role, Role) else account.role
        granted = set()
        for name in settings.role_capabilities.get(role, []):
            try:
                granted.add(Capability(name))
            except ValueError:
                logger.warning(f"Unknown capability '{name}' configured for role {role}")
        return granted


# Global instance
_role_resolver: Optional[RoleResolverInterface] = None


def get_role_resolver() -> RoleResolverInterface:
    global _role_resolver
    if _role_resolver is None:
        _role_resolver = SettingsRoleResolver()
    return _role_resolver
