from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, Tuple

from pydantic import BaseModel

from common.core.config import settings, RateLimitRule


class RateLimitDecision(BaseModel):
    """Result of one fixed-window check."""

    allowed: bool
    bucket: str
    limit: int
    remaining: int
    reset_at: datetime
    # True when the backend was unreachable and the bucket failed open
    degraded: bool = False
    # True when the identity is under an explicit block
    blocked: bool = False


class RateLimitBlock(BaseModel):
    """An explicit, expiring ban on one identity."""

    identity: str
    blocked_until: datetime


class RateLimiterInterface(ABC):
    """
    Fixed-window request limiter keyed by (bucket, identity), plus
    TTL-bound blocks that deny an identity in every bucket.
    """

    @abstractmethod
    async def allow(self, identity: str, bucket: Optional[str] = None) -> RateLimitDecision:
        """
        Count one request for identity in bucket.

        Blocked identities are denied without being counted.

        Raises:
            StoreUnavailable: backend unreachable and the bucket is security-sensitive
        """
        pass

    @abstractmethod
    async def block(self, identity: str, ttl_seconds: int) -> RateLimitBlock:
        """Deny identity everywhere for ttl_seconds, replacing any earlier block."""
        pass

    @abstractmethod
    async def is_blocked(self, identity: str) -> Optional[RateLimitBlock]:
        """The active block on identity, if any."""
        pass

    @abstractmethod
    async def unblock(self, identity: str) -> None:
        pass

    async def ping(self) -> bool:
        return True

    def resolve_bucket(self, bucket: Optional[str]) -> Tuple[str, RateLimitRule]:
        """Unknown buckets fall back to the default bucket's rule."""
        if bucket and bucket in settings.rate_limit_buckets:
            return bucket, settings.rate_limit_buckets[bucket]
        default = settings.rate_limit_default_bucket
        return default, settings.rate_limit_buckets[default]

    @staticmethod
    def block_key(identity: str) -> str:
        return f"ratelimit:block:{identity}"
