from typing import Optional

from common.core.config import settings
from common.core.constants import RateLimiterBackend
from common.core.otel_axiom_exporter import get_logger

from .interface import RateLimiterInterface
from .limits_rate_limiter import LimitsRateLimiter

logger = get_logger(__name__)

# Global instance
_rate_limiter: Optional[RateLimiterInterface] = None


def build_rate_limiter() -> RateLimiterInterface:
    """Limiter over the storage selected by settings.rate_limiter_backend."""
    if settings.rate_limiter_backend == RateLimiterBackend.MEMORY:
        return LimitsRateLimiter("async+memory://")
    return LimitsRateLimiter(
        f"async+{settings.redis_connection_url}",
        implementation="redispy",
        socket_timeout=settings.store_timeout_seconds,
        socket_connect_timeout=settings.store_timeout_seconds,
    )


def get_rate_limiter() -> RateLimiterInterface:
    """
    Get the configured fixed-window rate limiter.

    Returns:
        RateLimiterInterface: The rate limiter instance
    """
    global _rate_limiter

    if _rate_limiter is None:
        _rate_limiter = build_rate_limiter()
        logger.info(
            f"Initialized {settings.rate_limiter_backend.value} rate limiter"
        )

    return _rate_limiter


def set_rate_limiter(limiter: Optional[RateLimiterInterface]) -> None:
    """Replace the global limiter (tests, or None to re-read settings)."""
    global _rate_limiter
    _rate_limiter = limiter
