"""
Read-through cache for subscription aggregates.

Readers go through get(). The reconciler calls invalidate() after every
committed write; nothing else invalidates, and the TTL bounds staleness if
an invalidation is lost.
"""

from typing import Optional

from common.core.config import settings
from common.core.otel_axiom_exporter import get_logger
from common.providers.caching import cache, get_cache_provider
from packages.billing.cache_keys import subscription_by_account_key
from packages.billing.models.domain.subscription import Subscription
from packages.billing.repositories.subscription_repository import SubscriptionRepository

logger = get_logger(__name__)


class SubscriptionReadCache:
    def __init__(self):
        self.subscription_repo = SubscriptionRepository()

    @cache(
        Subscription,
        ttl=settings.subscription_cache_ttl_seconds,
        key_generator=subscription_by_account_key,
    )
    async def get(self, account_id: int) -> Optional[Subscription]:
        return await self.subscription_repo.get_by_account_id(account_id)

    async def invalidate(self, account_id: int) -> None:
        cache_key = subscription_by_account_key(account_id)
        try:
            await get_cache_provider().delete(cache_key)
        except Exception as e:
            logger.warning(f"Failed to invalidate {cache_key}: {e}")
