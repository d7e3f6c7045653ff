"""Global edge limiter instance for SlowAPI."""

from slowapi import Limiter
from slowapi.util import get_remote_address
from common.core.config import settings
from common.core.constants import RateLimiterBackend

# Coarse per-IP guard on the whole app. Per-account, per-bucket limits are
# enforced by the fixed-window limiter in this package.
# Multiple limits: all must be satisfied (whichever is hit first applies)
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=settings.edge_rate_limits,
    storage_uri=(
        "memory://"
        if settings.rate_limiter_backend == RateLimiterBackend.MEMORY
        else settings.redis_connection_url
    ),
)
