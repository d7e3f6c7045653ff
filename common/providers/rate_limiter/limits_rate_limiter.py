from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from limits import RateLimitItem, RateLimitItemPerSecond
from limits.aio.strategies import FixedWindowRateLimiter
from limits.storage import storage_from_string

from common.core.config import RateLimitRule
from common.core.exceptions import StoreUnavailable
from common.core.otel_axiom_exporter import get_logger, trace_span
from .interface import RateLimitBlock, RateLimitDecision, RateLimiterInterface

logger = get_logger(__name__)

NAMESPACE = "ratelimit"


def _utc(timestamp: float) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


class LimitsRateLimiter(RateLimiterInterface):
    """
    Rate limiter over a `limits` async storage.

    The storage URI picks the backend: ``async+redis://...`` shares windows
    and blocks across every API instance, ``async+memory://`` keeps them in
    process for local runs and tests. Counting is the library's fixed-window
    strategy; blocks are plain expiring counters in the same storage.
    """

    def __init__(self, storage_uri: str, **storage_options: Any):
        self.storage = storage_from_string(storage_uri, **storage_options)
        self.strategy = FixedWindowRateLimiter(self.storage)

    @staticmethod
    def rate_limit_item(rule: RateLimitRule) -> RateLimitItem:
        return RateLimitItemPerSecond(rule.limit, rule.window_seconds, namespace=NAMESPACE)

    async def ping(self) -> bool:
        try:
            return await self.storage.check()
        except Exception as e:
            logger.warning(f"Rate limiter storage check failed: {e}")
            return False

    @trace_span
    async def allow(self, identity: str, bucket: Optional[str] = None) -> RateLimitDecision:
        bucket_name, rule = self.resolve_bucket(bucket)
        item = self.rate_limit_item(rule)

        try:
            active_block = await self.is_blocked(identity)
            if active_block is not None:
                logger.info(
                    f"Denied blocked identity {identity} on bucket {bucket_name}",
                    extra={"bucket": bucket_name, "identity": identity},
                )
                return RateLimitDecision(
                    allowed=False,
                    bucket=bucket_name,
                    limit=rule.limit,
                    remaining=0,
                    reset_at=active_block.blocked_until,
                    blocked=True,
                )

            allowed = await self.strategy.hit(item, bucket_name, identity)
            stats = await self.strategy.get_window_stats(item, bucket_name, identity)
        except Exception as e:
            if rule.security_sensitive:
                logger.error(
                    f"Rate limiter unavailable for sensitive bucket {bucket_name}, denying: {e}",
                    extra={"bucket": bucket_name, "identity": identity},
                )
                raise StoreUnavailable(
                    f"Rate limiter unavailable for bucket {bucket_name}"
                ) from e
            logger.warning(
                f"Rate limiter unavailable for bucket {bucket_name}, allowing: {e}",
                extra={"bucket": bucket_name, "identity": identity},
            )
            return RateLimitDecision(
                allowed=True,
                bucket=bucket_name,
                limit=rule.limit,
                remaining=rule.limit,
                reset_at=datetime.now(timezone.utc) + timedelta(seconds=rule.window_seconds),
                degraded=True,
            )

        return RateLimitDecision(
            allowed=allowed,
            bucket=bucket_name,
            limit=rule.limit,
            remaining=max(stats.remaining, 0),
            reset_at=_utc(stats.reset_time),
        )

    @trace_span
    async def block(self, identity: str, ttl_seconds: int) -> RateLimitBlock:
        key = self.block_key(identity)
        try:
            # A counter only takes its expiry on creation
            await self.storage.clear(key)
            await self.storage.incr(key, ttl_seconds)
            blocked_until = _utc(await self.storage.get_expiry(key))
        except Exception as e:
            raise StoreUnavailable(f"Could not block {identity}: {e}") from e
        logger.info(
            f"Blocked identity {identity} until {blocked_until.isoformat()}",
            extra={"identity": identity, "ttl_seconds": ttl_seconds},
        )
        return RateLimitBlock(identity=identity, blocked_until=blocked_until)

    async def is_blocked(self, identity: str) -> Optional[RateLimitBlock]:
        key = self.block_key(identity)
        if await self.storage.get(key) <= 0:
            return None
        return RateLimitBlock(
            identity=identity, blocked_until=_utc(await self.storage.get_expiry(key))
        )

    @trace_span
    async def unblock(self, identity: str) -> None:
        try:
            await self.storage.clear(self.block_key(identity))
        except Exception as e:
            raise StoreUnavailable(f"Could not unblock {identity}: {e}") from e
        logger.info(f"Unblocked identity {identity}", extra={"identity": identity})
